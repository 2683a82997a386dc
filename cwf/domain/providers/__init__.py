from .generation_provider import GenerationProvider
from .provider_factory import ProviderFactory
from .scripted_provider import ScriptedProvider

# Register built-in providers
ProviderFactory.register("scripted", ScriptedProvider)

__all__ = ["GenerationProvider", "ProviderFactory", "ScriptedProvider"]

"""Built-in workflow templates.

Content templates share one shape: collect information, generate the asset
automatically, then review it. The idle "Base Workflow" asks which workflow
to run and titles the thread.
"""

from cwf.domain.constants import (
    ASSET_GENERATION_STEP,
    ASSET_REVIEW_STEP,
    IDLE_TEMPLATE_NAME,
    INFORMATION_COLLECTION_STEP,
    THREAD_TITLE_STEP,
    WORKFLOW_SELECTION_STEP,
)
from cwf.domain.models.step_payloads import (
    DialogMode,
    DialogPayload,
    GenerationPayload,
    TitlePayload,
)
from cwf.domain.models.template import (
    StepDefinition,
    WorkflowSecurityLevel,
    WorkflowTemplate,
)
from cwf.domain.models.workflow import StepType

PRESS_RELEASE = "Press Release"
SOCIAL_POST = "Social Post"
BLOG_ARTICLE = "Blog Article"
FAQ = "FAQ"
MEDIA_PITCH = "Media Pitch"
MEDIA_LIST = "Media List Generator"

SELECTABLE_WORKFLOWS = (PRESS_RELEASE, SOCIAL_POST, BLOG_ARTICLE, FAQ, MEDIA_PITCH, MEDIA_LIST)

_REVIEW_PROMPT = (
    "Here's your generated {asset}. Please review it and let me know if you'd "
    "like to make any changes. If you're satisfied, simply reply with 'approved'."
)


def _content_template(
    template_id: str,
    name: str,
    description: str,
    collect_prompt: str,
    required: str,
    deliverable: str,
    security_level: WorkflowSecurityLevel = WorkflowSecurityLevel.OPEN,
    switching_enabled: bool = True,
    transfer_restrictions: tuple[str, ...] = (),
) -> WorkflowTemplate:
    asset = name.lower() if name != FAQ else "FAQ document"
    return WorkflowTemplate(
        id=template_id,
        name=name,
        description=description,
        security_level=security_level,
        switching_enabled=switching_enabled,
        transfer_restrictions=transfer_restrictions,
        steps=(
            StepDefinition(
                name=INFORMATION_COLLECTION_STEP,
                type=StepType.DIALOG,
                prompt=collect_prompt,
                payload=DialogPayload(
                    mode=DialogMode.COLLECT,
                    goal=f"Collect the information needed to write a {asset}",
                    instructions=f"Required information: {required}. "
                    "If the user does not know something, skip it and move on.",
                ),
            ),
            StepDefinition(
                name=ASSET_GENERATION_STEP,
                type=StepType.GENERATION,
                dependencies=(INFORMATION_COLLECTION_STEP,),
                prompt=f"Generating your {asset} now. This may take a moment...",
                payload=GenerationPayload(
                    auto_execute=True,
                    goal=f"Write the complete {asset} from the collected information",
                    instructions=f"{deliverable} Return JSON: "
                    '{"asset": "<the complete content>"} with no extra commentary.',
                ),
            ),
            StepDefinition(
                name=ASSET_REVIEW_STEP,
                type=StepType.DIALOG,
                dependencies=(ASSET_GENERATION_STEP,),
                prompt=_REVIEW_PROMPT.format(asset=asset),
                payload=DialogPayload(
                    mode=DialogMode.REVIEW,
                    goal=f"Let the user approve the {asset} or request changes",
                ),
            ),
        ),
    )


BASE_WORKFLOW = WorkflowTemplate(
    id="base-workflow",
    name=IDLE_TEMPLATE_NAME,
    description="Ask which workflow to run next and title the thread",
    steps=(
        StepDefinition(
            name=WORKFLOW_SELECTION_STEP,
            type=StepType.DIALOG,
            prompt=(
                "Which workflow would you like to use? Please choose from: "
                + ", ".join(SELECTABLE_WORKFLOWS)
                + ". You can also describe what you want to create."
            ),
            payload=DialogPayload(
                mode=DialogMode.SELECT,
                goal="Identify which workflow the user wants to run",
                options=list(SELECTABLE_WORKFLOWS),
                instructions=(
                    "Set collectedInformation.selectedWorkflow to one of the options "
                    "once the choice is clear, or to \"cancelled\" if the user does "
                    "not want to create anything."
                ),
            ),
        ),
        StepDefinition(
            name=THREAD_TITLE_STEP,
            type=StepType.TITLE,
            dependencies=(WORKFLOW_SELECTION_STEP,),
            payload=TitlePayload(
                auto_execute=True,
                goal="Generate a short thread title for the selected workflow",
            ),
        ),
    ),
)

PRESS_RELEASE_TEMPLATE = _content_template(
    "press-release",
    PRESS_RELEASE,
    "Draft PR announcement materials",
    "Let's create your press release. Please start by providing your company name, "
    "a brief description of what your company does, and what you're announcing.",
    "company name and description, the announcement, key quotes, "
    "spokesperson, date and location, media contact",
    "Write a press release with headline, dateline, body, quotes and boilerplate.",
)

SOCIAL_POST_TEMPLATE = _content_template(
    "social-post",
    SOCIAL_POST,
    "Craft social copy in your brand voice",
    "Let's create your social post. Please start by providing your company name, "
    "what you're announcing, and which platforms you want to target.",
    "company name and description, the core message, target audience, "
    "call to action, hashtags, target platforms",
    "Write a LinkedIn post and a Twitter/X post.",
)

BLOG_ARTICLE_TEMPLATE = _content_template(
    "blog-article",
    BLOG_ARTICLE,
    "Create long-form POVs, news, or narratives",
    "Let's create your blog article. Please start by providing your company name, "
    "the main topic you want to write about, and your target audience.",
    "company name and description, topic, target audience, key points, tone",
    "Write a blog article with a title, introduction, sections and conclusion.",
)

FAQ_TEMPLATE = _content_template(
    "faq",
    FAQ,
    "Generate frequent questions and suggested responses",
    "Let's create your FAQ document. What product, service or announcement "
    "should it cover, and who will read it?",
    "company name, subject of the FAQ, audience, known customer questions",
    "Write 8-12 questions with concise answers.",
)

MEDIA_PITCH_TEMPLATE = _content_template(
    "media-pitch",
    MEDIA_PITCH,
    "Build custom outreach with context",
    "Let's create your media pitch. What are we pitching today, and is it an "
    "exclusive offer to one reporter or a general pitch?",
    "company name, the news hook, exclusivity, target outlets, spokesperson",
    "Write a short pitch email with subject line.",
)

MEDIA_LIST_TEMPLATE = _content_template(
    "media-list",
    MEDIA_LIST,
    "Build a list of relevant media contacts for a topic",
    "Please provide the topic for which you need relevant media contacts.",
    "topic, target outlets, geography",
    "List relevant reporters with outlet and beat.",
    security_level=WorkflowSecurityLevel.RESTRICTED,
    switching_enabled=False,
    transfer_restrictions=("contact_info", "email_addresses"),
)

BUILTIN_TEMPLATES: tuple[WorkflowTemplate, ...] = (
    BASE_WORKFLOW,
    PRESS_RELEASE_TEMPLATE,
    SOCIAL_POST_TEMPLATE,
    BLOG_ARTICLE_TEMPLATE,
    FAQ_TEMPLATE,
    MEDIA_PITCH_TEMPLATE,
    MEDIA_LIST_TEMPLATE,
)

import base64
from functools import lru_cache

from openai import OpenAI

from config import OPENAI_API_KEY, OPENAI_CHAT_MODEL, OPENAI_IMAGE_MODEL
from loggers import setup_gpt_logger
from models import ProjectMetrics

logger = setup_gpt_logger()


@lru_cache(maxsize=1)
def get_openai_client() -> OpenAI:
    return OpenAI(api_key=OPENAI_API_KEY)


def edit_image(image_bytes: bytes, prompt: str, client: OpenAI = None) -> bytes:
    """Send an image and an edit instruction, return the edited PNG bytes."""
    client = client or get_openai_client()
    result = client.images.edit(
        model=OPENAI_IMAGE_MODEL,
        image=("image.png", image_bytes, "image/png"),
        prompt=prompt,
    )
    return base64.b64decode(result.data[0].b64_json)


def build_report_prompt(metrics: ProjectMetrics) -> str:
    return f"""
    Project: {metrics.project_name} (client: {metrics.client_name})
    Status: {metrics.status}
    Tasks: {metrics.completed_tasks}/{metrics.total_tasks} done, {metrics.overdue_tasks} overdue
    Progress: {metrics.progress:.0f}% done vs {metrics.planned_progress:.0f}% planned
    Hours: {metrics.hours_consumed:.1f} consumed of {metrics.hours_sold:.1f} sold ({metrics.burn_rate:.0f}% burned)
    Margin: {metrics.margin:.1f}%
    """


def fallback_report(metrics: ProjectMetrics) -> str:
    state = "needs attention" if metrics.is_critical else "is on track"
    return (
        f"{metrics.project_name} {state}: {metrics.completed_tasks} of {metrics.total_tasks} tasks done, "
        f"{metrics.overdue_tasks} overdue, {metrics.burn_rate:.0f}% of sold hours used."
    )


def generate_status_report(metrics: ProjectMetrics, client: OpenAI = None) -> str:
    """Weekly status report text for one project."""
    try:
        client = client or get_openai_client()
        response = client.chat.completions.create(
            model=OPENAI_CHAT_MODEL,
            messages=[
                {
                    "role": "system",
                    "content": "You're an expert project manager. Write a short weekly status report "
                               "from the figures given: progress, risks and next steps. No greeting or sign-off."
                },
                {
                    "role": "user",
                    "content": build_report_prompt(metrics)
                }
            ],
            temperature=0.5
        )
        return response.choices[0].message.content.strip()
    except Exception as e:
        # Fallback to a plain summary if the model call fails
        logger.error(f"Status report generation failed for project {metrics.id}: {e}")
        return fallback_report(metrics)

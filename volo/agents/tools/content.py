"""Social tools: engagement, drafts and publishing."""

from __future__ import annotations

import logging
from typing import Any, Literal, Optional

from pydantic_ai import RunContext

from ...browser.actions import PublishError, engage_post as browser_engage, publish_thread
from ...contracts import Platform, StepStatus, StepType
from ...errors import SessionMissingError
from ...persistence import ContentItem
from ..deps import AgentDeps

logger = logging.getLogger(__name__)

THREAD_SEPARATOR = "\n---\n"


def split_thread(body: str) -> list[str]:
    """Split a draft into thread posts on lines containing only ``---``."""
    return [part.strip() for part in body.split(THREAD_SEPARATOR) if part.strip()]


async def engage_post(
    ctx: RunContext[AgentDeps],
    platform: Literal["x", "linkedin"],
    post_url: str,
    action: Literal["like", "reply", "retweet"],
    reply_text: Optional[str] = None,
) -> dict[str, Any]:
    """Like, reply to or repost a post using the saved browser session.

    Args:
        platform: "x" or "linkedin".
        post_url: URL of the post.
        action: "like", "reply" or "retweet".
        reply_text: Text of the reply, required when action is "reply".
    """
    deps = ctx.deps
    step_input = {"platform": platform, "action": action, "reply_text": reply_text}
    if deps.browser is None:
        error = "Browser automation is not configured"
    else:
        try:
            result = await browser_engage(deps.browser, platform, post_url, action, reply_text)
        except SessionMissingError as exc:
            error = str(exc)
        else:
            await deps.ledger.record_step(
                deps.run_id,
                StepType.POST_ENGAGEMENT,
                StepStatus.COMPLETED if result.success else StepStatus.FAILED,
                tool="engage_post",
                url=post_url,
                input=step_input,
                output={"success": result.success, "action": action},
                error=result.error,
            )
            return {"success": result.success, "action": action, "error": result.error}

    await deps.ledger.record_step(
        deps.run_id,
        StepType.POST_ENGAGEMENT,
        StepStatus.FAILED,
        tool="engage_post",
        url=post_url,
        input=step_input,
        error=error,
    )
    return {"success": False, "action": action, "error": error}


async def save_draft(
    ctx: RunContext[AgentDeps],
    body: str,
    platform: Literal["x", "linkedin"] = "x",
    title: Optional[str] = None,
    content_type: Literal["post", "thread", "article"] = "post",
) -> dict[str, Any]:
    """Save a draft post for later publishing.

    For a thread, separate the posts with a line containing only ``---``.

    Args:
        body: Text of the post or thread.
        platform: Target platform.
        title: Optional internal title.
        content_type: "post", "thread" or "article".
    """
    deps = ctx.deps
    item = ContentItem(
        title=title,
        body=body,
        content_type=content_type,
        platform_target=platform,
        generation_prompt=f"{deps.workflow_type} run {deps.run_id}",
    )
    await deps.repository.save_content(item)
    await deps.ledger.record_step(
        deps.run_id,
        StepType.CONTENT_CREATE,
        StepStatus.COMPLETED,
        tool="save_draft",
        input={"platform": platform, "content_type": content_type},
        output={"content_id": item.id, "length": len(body)},
    )
    return {"status": "draft", "content_id": item.id}


async def publish_content(ctx: RunContext[AgentDeps], content_id: str) -> dict[str, Any]:
    """Publish a saved draft to its target platform.

    Args:
        content_id: ID returned by save_draft.
    """
    deps = ctx.deps
    item = await deps.repository.get_content(content_id)
    error: Optional[str] = None
    if item is None:
        error = f"Content {content_id} not found"
    elif item.platform_target != Platform.X.value:
        error = f"Publishing to {item.platform_target} is not automated"
    elif deps.browser is None:
        error = "Browser automation is not configured"

    if error is None:
        try:
            result = await publish_thread(deps.browser, split_thread(item.body))
        except (PublishError, SessionMissingError) as exc:
            error = str(exc)
            await deps.repository.save_content(item.model_copy(update={"status": "failed"}))
        else:
            published = item.model_copy(
                update={
                    "status": "published",
                    "platform_url": result.post_url,
                    "platform_post_id": result.post_ids[0] if result.post_ids else None,
                }
            )
            await deps.repository.save_content(published)
            await deps.ledger.record_step(
                deps.run_id,
                StepType.CONTENT_PUBLISH,
                StepStatus.COMPLETED,
                tool="publish_content",
                url=result.post_url,
                input={"content_id": content_id},
                output={"post_url": result.post_url, "post_ids": result.post_ids},
            )
            return {"status": "published", "post_url": result.post_url}

    logger.warning(f"Publishing {content_id} failed: {error}")
    await deps.ledger.record_step(
        deps.run_id,
        StepType.CONTENT_PUBLISH,
        StepStatus.FAILED,
        tool="publish_content",
        input={"content_id": content_id},
        error=error,
    )
    return {"status": "failed", "error": error}

"""Chat model doubles that stream through the regular LangChain callback path."""

import asyncio
from typing import Any, Iterator, Optional

from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage
from langchain_core.outputs import ChatGenerationChunk


class ScriptedChatModel(GenericFakeChatModel):
    """
    Streams `text` split on whitespace boundaries. With `fail_after` set, the
    stream raises after that many chunks have been emitted.
    """

    fail_after: Optional[int] = None

    def _stream(
        self,
        messages: list[BaseMessage],
        stop: Optional[list[str]] = None,
        run_manager: Any = None,
        **kwargs: Any,
    ) -> Iterator[ChatGenerationChunk]:
        emitted = 0
        if self.fail_after == 0:
            raise RuntimeError("model unavailable")
        for chunk in super()._stream(messages, stop=stop, run_manager=run_manager, **kwargs):
            yield chunk
            emitted += 1
            if self.fail_after is not None and emitted >= self.fail_after:
                raise RuntimeError("model stream interrupted")


def scripted_model(text: str, fail_after: Optional[int] = None) -> ScriptedChatModel:
    return ScriptedChatModel(messages=iter([AIMessage(content=text)]), fail_after=fail_after)


class StalledChatModel(GenericFakeChatModel):
    """Never produces a token."""

    async def _astream(self, messages, stop=None, run_manager=None, **kwargs):
        await asyncio.sleep(3600)
        yield ChatGenerationChunk(message=AIMessageChunk(content="late"))


def stalled_model() -> StalledChatModel:
    return StalledChatModel(messages=iter([]))

"""
SimulatorChatResponder — deterministic replies for tests.

No LLM calls, no network. Records every (message, context) it was asked
about so tests can check what would have been sent to the model.
"""

from gymbot.domain.chat import ChatContext, ChatResponder


class SimulatorChatResponder(ChatResponder):

    def __init__(self, fail_with: Exception | None = None):
        self.prompts: list[tuple[str, ChatContext]] = []
        self._fail_with = fail_with

    async def reply(self, message: str, context: ChatContext) -> str:
        self.prompts.append((message, context))
        if self._fail_with is not None:
            raise self._fail_with

        if context.availability:
            return (
                f"Hey {context.user_name}! 💪 You have {len(context.availability)} "
                f"slot(s) set this week. Keep it up!"
            )
        return (
            f"Hey {context.user_name}! 💪 Tell me when you're free, "
            f"e.g. \"Monday 6-8pm\", and I'll keep track of it."
        )

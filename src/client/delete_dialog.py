"""Delete confirmation dialog state."""
from collections.abc import Awaitable, Callable
from uuid import UUID

DeleteCallback = Callable[[UUID], Awaitable[None]]


class DeleteDialog:
    """
    Modal asking the user to confirm a delete.

    closed -> open -> closed. Confirm runs the deletion callback for the target
    and then closes; cancel (or a backdrop click) just closes.
    """

    def __init__(self, on_confirm: DeleteCallback) -> None:
        self._on_confirm = on_confirm
        self.target_id: UUID | None = None
        self.title: str = ""

    @property
    def is_open(self) -> bool:
        return self.target_id is not None

    @property
    def prompt(self) -> str:
        return (
            f'Are you sure you want to delete "{self.title}"? '
            "This action cannot be undone."
        )

    def open(self, target_id: UUID, title: str) -> None:
        self.target_id = target_id
        self.title = title

    def close(self) -> None:
        self.target_id = None
        self.title = ""

    async def confirm(self) -> None:
        """Delete the target, then close. No-op while closed."""
        if self.target_id is None:
            return
        target_id = self.target_id
        try:
            await self._on_confirm(target_id)
        finally:
            self.close()

    def cancel(self) -> None:
        self.close()

    # Clicking the backdrop behaves like "No, keep it"
    dismiss = cancel

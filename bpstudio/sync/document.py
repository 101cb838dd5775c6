"""The structural-document capability consumed by the sync controller.

The controller never touches a concrete graph, tree or canvas. Anything
that can build itself from text, serialize back to text, report its own
mutations and be torn down can be kept in sync.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

MutationCallback = Callable[[Any], None]
Unsubscribe = Callable[[], None]


@runtime_checkable
class StructuralDocument(Protocol):
    """Factory and accessor for structural forms of a text document.

    ``construct`` returns an opaque handle that the other methods accept.
    """

    def construct(self, text: str) -> Any:
        """Build a new structural form from text and return its handle."""
        ...

    def serialize(self, handle: Any) -> str:
        """Render the form back to text. May raise on a broken form."""
        ...

    def on_mutation(self, handle: Any, callback: MutationCallback) -> Unsubscribe:
        """Call ``callback`` after every change to the form.

        Content, structure and attribute changes all count. Returns a
        function that stops the notifications.
        """
        ...

    def destroy(self, handle: Any) -> None:
        """Release the form. The handle is unusable afterwards."""
        ...

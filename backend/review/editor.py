"""Change tracking for edited step output."""

import copy
import json
from typing import Any, Optional

from review.errors import ValidationError


def _canonical(data: Any) -> str:
    return json.dumps(data, sort_keys=True, default=str)


class EditorTracker:
    """Tracks a reviewer's edits of one approval's output_data.

    `has_changes` compares the edited payload with the initial output by
    value, so editing a field back to its original value clears it.
    """

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._initial: dict[str, Any] = copy.deepcopy(initial or {})
        self._baseline = _canonical(self._initial)
        self._edited: Optional[dict[str, Any]] = None

    @property
    def initial(self) -> dict[str, Any]:
        return self._initial

    @property
    def edited(self) -> Optional[dict[str, Any]]:
        return self._edited

    @property
    def has_changes(self) -> bool:
        return self._edited is not None and _canonical(self._edited) != self._baseline

    def update(self, data: dict[str, Any]) -> bool:
        """Replace the edited payload; returns whether it differs from the initial output."""
        self._edited = copy.deepcopy(data)
        return self.has_changes

    def set_field(self, key: str, value: Any) -> bool:
        """Edit one top-level field of the output."""
        data = copy.deepcopy(self._edited if self._edited is not None else self._initial)
        data[key] = value
        return self.update(data)

    def load_json(self, text: str) -> bool:
        """Replace the edited payload from raw JSON text.

        Raises:
            ValidationError: If the text is not a JSON object
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationError(ValidationError.INVALID_JSON, f"Invalid JSON: {e.msg}") from e
        if not isinstance(data, dict):
            raise ValidationError(ValidationError.INVALID_JSON, "Edited output must be a JSON object")
        return self.update(data)

    def reset(self) -> None:
        self._edited = None

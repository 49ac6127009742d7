"""Extraction of marker-delimited JSON action blocks from assistant text.

A block looks like::

    ```json
    /// PROJECT_JSON_START ///
    {"projectName": "Weather Station", "components": []}
    /// PROJECT_JSON_END ///
    ```

The generator does not fence its output consistently, so three spellings are
accepted in priority order: a ``json``-tagged fence, an untagged fence and
bare markers. A block whose JSON does not parse is left in the text so the
user still sees it.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from iot_oracle.exceptions import DecodeError
from iot_oracle.models.actions import ActionKind
from iot_oracle.utils.logging import ActionLogger

action_logger = ActionLogger("block_extractor")

FENCED_JSON = "fenced_json"
FENCED = "fenced"
BARE = "bare"


def _compile_patterns(kind: ActionKind) -> list[tuple[str, re.Pattern[str]]]:
    start = re.escape(kind.start_marker)
    end = re.escape(kind.end_marker)
    body = r"(.*?)"
    return [
        (FENCED_JSON, re.compile(r"```json\s*" + start + body + end + r"\s*```", re.DOTALL)),
        (FENCED, re.compile(r"```\s*" + start + body + end + r"\s*```", re.DOTALL)),
        (BARE, re.compile(start + body + end, re.DOTALL)),
    ]


_PATTERNS = {kind: _compile_patterns(kind) for kind in ActionKind}


@dataclass
class ExtractionResult:
    """Outcome of looking for one block kind in a piece of text."""

    display_text: str
    payload: Any = None
    style: str | None = None
    error: DecodeError | None = None

    @property
    def matched(self) -> bool:
        return self.style is not None

    @property
    def decoded(self) -> bool:
        return self.matched and self.error is None


@dataclass
class PipelineResult:
    """Outcome of running every block kind over a piece of text."""

    display_text: str
    payloads: dict[ActionKind, Any] = field(default_factory=dict)
    failures: dict[ActionKind, DecodeError] = field(default_factory=dict)


def _find(text: str, kind: ActionKind) -> tuple[str, re.Match[str]] | None:
    for style, pattern in _PATTERNS[kind]:
        match = pattern.search(text)
        if match:
            return style, match
    return None


def extract_block(
    text: str,
    kind: ActionKind,
    log_failures: bool = True,
) -> ExtractionResult:
    """
    Locate and decode one block kind.

    Args:
        text: Text that may contain the block
        kind: Which marker pair to look for
        log_failures: Whether to log a block that matched but failed to decode

    Returns:
        ExtractionResult whose ``display_text`` has the matched span removed
        on success, or is ``text`` unchanged on no match, an empty or ``null``
        block, or a decode failure
    """
    found = _find(text, kind)
    if found is None:
        return ExtractionResult(display_text=text)

    style, match = found
    raw = match.group(1)
    if not raw:
        return ExtractionResult(display_text=text)

    try:
        payload = json.loads(raw.strip())
    except json.JSONDecodeError as e:
        error = DecodeError(kind.value, str(e), raw)
        if log_failures:
            action_logger.log_decode_failure(kind.value, str(e), raw.strip())
        return ExtractionResult(display_text=text, style=style, error=error)

    if payload is None:
        return ExtractionResult(display_text=text)

    action_logger.log_decoded(kind.value, style, len(raw))
    display_text = text.replace(match.group(0), "", 1).strip()
    return ExtractionResult(display_text=display_text, payload=payload, style=style)


def extract_all(
    text: str,
    kinds: Iterable[ActionKind] = tuple(ActionKind),
    log_failures: bool = True,
) -> PipelineResult:
    """Run every kind in order, each stage working on the previous stage's text."""
    result = PipelineResult(display_text=text)
    for kind in kinds:
        stage = extract_block(result.display_text, kind, log_failures=log_failures)
        result.display_text = stage.display_text
        if stage.error is not None:
            result.failures[kind] = stage.error
        elif stage.payload is not None:
            result.payloads[kind] = stage.payload
    return result

"""Recover a JSON document from a model reply that may be wrapped in markdown fencing."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from ebook_ai.exceptions import ParseError

logger = logging.getLogger(__name__)

FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


class StructuredOutputParser:
    """Pure parser: the same text always yields the same value or the same error."""

    def parse(self, text: str, context: str = "思维导图数据") -> Any:
        try:
            return json.loads(text.strip())
        except json.JSONDecodeError:
            pass

        fenced = self._extract_fenced_block(text)
        if fenced is not None:
            try:
                return json.loads(fenced)
            except json.JSONDecodeError as e:
                logger.debug(f"Fenced block in reply is not valid JSON ({context}): {e}")

        raise ParseError(f"AI返回的{context}格式不正确", context=context)

    def _extract_fenced_block(self, text: str) -> Optional[str]:
        match = FENCED_BLOCK_RE.search(text)
        if match and match.group(1):
            return match.group(1).strip()
        return None


def parse_structured_output(text: str, context: str = "思维导图数据") -> Any:
    return StructuredOutputParser().parse(text, context)

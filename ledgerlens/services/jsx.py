"""Compile JSX in render snippets down to plain ``React.createElement`` calls.

The browser builds the report component with ``new Function``, which only
understands plain JavaScript, so stored render code must not contain JSX.
Compilation uses the Babel build bundled with dukpy.
"""

from __future__ import annotations

import logging

import dukpy

logger = logging.getLogger(__name__)


def transform_jsx(code: str) -> str:
    """Return ``code`` compiled by Babel; on a compile error the input is returned unchanged."""

    try:
        return dukpy.jsx_compile(code)
    except dukpy.JSRuntimeError as exc:
        logger.error("Error transforming JSX: %s", exc)
        return code


__all__ = ["transform_jsx"]

# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Element selector descriptors and resolution result types.

Callers describe an element in one of four shapes (validated by pydantic):

- ``{"ref": "e12"}``: a ref from the last snapshot, or a custom ref alias
- ``{"role": "button", "text": "Submit"}``: ARIA role with optional name
- ``{"css": "#login"}``: CSS selector
- ``{"text": "Sign in", "exact": false}``: visible text
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

if TYPE_CHECKING:
    from playwright.async_api import Locator


class _SelectorBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def strategy(self) -> str:
        raise NotImplementedError

    def describe(self) -> str:
        raise NotImplementedError


class RefSelector(_SelectorBase):
    """Snapshot ref (``e12``) or a caller-registered custom ref."""

    ref: str = Field(min_length=1, description="Element ref from the page snapshot or a custom ref")

    @property
    def strategy(self) -> str:
        return "ref"

    def describe(self) -> str:
        return f"ref={self.ref}"


class RoleSelector(_SelectorBase):
    role: str = Field(min_length=1, description="ARIA role, e.g. button, link, textbox")
    text: str | None = Field(default=None, description="Accessible name to match (exact)")

    @property
    def strategy(self) -> str:
        return "role"

    def describe(self) -> str:
        if self.text:
            return f'role={self.role}[name="{self.text}"]'
        return f"role={self.role}"


class CSSSelector(_SelectorBase):
    css: str = Field(min_length=1, description="CSS selector")

    @property
    def strategy(self) -> str:
        return "css"

    def describe(self) -> str:
        return f"css={self.css}"


class TextSelector(_SelectorBase):
    text: str = Field(min_length=1, description="Visible text content")
    exact: bool = Field(default=False, description="Require a full-string match")

    @property
    def strategy(self) -> str:
        return "text"

    def describe(self) -> str:
        return f'text="{self.text}"' if self.exact else f"text={self.text}"


ElementSelector = Annotated[
    RefSelector | RoleSelector | CSSSelector | TextSelector,
    Field(union_mode="smart"),
]

_selector_adapter: TypeAdapter[ElementSelector] = TypeAdapter(ElementSelector)


def parse_selector(raw: Any) -> ElementSelector:
    """Validate a raw descriptor (dict or model) into a selector model.

    Raises:
        pydantic.ValidationError: unknown shape or empty fields.
    """
    if isinstance(raw, _SelectorBase):
        return raw
    return _selector_adapter.validate_python(raw)


class ElementTarget(BaseModel):
    """A labelled element: the label is shown to humans and attached to the locator."""

    model_config = ConfigDict(extra="forbid")

    element: str = Field(description="Human-readable element description")
    selector: ElementSelector | None = Field(default=None, description="How to locate the element")


@dataclass(slots=True)
class SelectorResolutionResult:
    """Outcome of resolving one descriptor.

    Exactly one of ``locator`` / ``error`` is set. ``alternatives`` holds
    JSON-ready suggestions (``{"selector": {...}, "reason": str}``).
    """

    selector: ElementSelector
    locator: Locator | None = None
    match_count: int = 0
    description: str | None = None
    error: str | None = None
    alternatives: list[dict] = field(default_factory=list)
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.locator is not None and self.error is None


@dataclass(frozen=True, slots=True)
class BatchResolutionOptions:
    """Overrides for one batch; None falls back to the tab config."""

    timeout_ms: int | None = None
    max_concurrency: int | None = None

"""Completion parameter models and the defaults resolver."""

from typing import Any

from pydantic import BaseModel

GENERATION_FIELDS = ("top_p", "max_tokens", "stop", "temperature")


class CompletionParameters(BaseModel):
    """Fully populated generation parameters sent upstream.

    Values are passed through as given. Out-of-range values (e.g. a top_p
    above 1) are left for the provider to reject.
    """

    model_config = {"frozen": True}

    top_p: float
    max_tokens: int
    stop: str | list[str]
    temperature: float

    def as_request_kwargs(self) -> dict[str, Any]:
        """Return the parameters as keyword arguments for a completion call."""
        return self.model_dump()


class ParameterOverrides(BaseModel):
    """Caller-supplied partial parameters. Unset fields mean "use the default"."""

    model_config = {"frozen": True}

    top_p: float | None = None
    max_tokens: int | None = None
    stop: str | list[str] | None = None
    temperature: float | None = None


DEFAULT_PARAMETERS = CompletionParameters(
    top_p=1.0,
    max_tokens=512,
    stop="\n",
    temperature=0.7,
)


def resolve_parameters(
    overrides: ParameterOverrides | None,
    defaults: CompletionParameters = DEFAULT_PARAMETERS,
) -> CompletionParameters:
    """Merge caller overrides onto provider defaults, field by field.

    The merge is shallow: a list ``stop`` from the caller replaces the default
    outright, it is never combined with it.

    Args:
        overrides: Partial parameters from the client, or None.
        defaults: The provider's default parameters.

    Returns:
        Complete parameters with every field populated.
    """
    if overrides is None:
        return defaults

    merged: dict[str, Any] = {}
    for name in GENERATION_FIELDS:
        value = getattr(overrides, name)
        merged[name] = value if value is not None else getattr(defaults, name)
    return CompletionParameters(**merged)

"""
Result Models

Some reads can come back empty for two different reasons: there is no
data, or the feature behind it is not available in the store. These
models keep the two apart so callers do not have to guess.

Usage:
    result = await selector.list(owner_id)
    if isinstance(result, FeatureUnavailable):
        show_notice(result.message)
    else:
        render(result.value)
"""

from typing import Generic, TypeVar, Union

from pydantic import BaseModel


T = TypeVar("T")


class Available(BaseModel, Generic[T]):
    """The feature answered; `value` may still be empty."""

    value: T

    @property
    def available(self) -> bool:
        return True


class FeatureUnavailable(BaseModel):
    """The feature is switched off or its storage is missing."""

    feature: str
    message: str

    @property
    def available(self) -> bool:
        return False


Outcome = Union[Available[T], FeatureUnavailable]

from enum import Enum
from typing import Type, TypeVar, Union

from rateshift.exceptions import InvalidArgumentError

E = TypeVar("E", bound=Enum)


class AnalysisType(Enum):
    DIVERSIFICATION = "diversification"
    TRAIT = "trait"


class NodeMode(Enum):
    INCLUDE = "include"
    EXCLUDE = "exclude"


class ReturnType(Enum):
    POSTERIOR = "posterior"
    BAYESFACTOR = "bayesfactor"


class RateType(Enum):
    AUTO = "auto"
    SPECIATION = "speciation"
    EXTINCTION = "extinction"
    NETDIV = "netdiv"


class EventMatchPolicy(Enum):
    """How shift events on the same branch are paired across samples."""

    NODE = "node"
    NODE_AND_TIME = "node_and_time"


def coerce_enum(enum_cls: Type[E], value: Union[E, str], name: str) -> E:
    """
    Convert a string or enum member into a member of ``enum_cls``.

    Raises:
        InvalidArgumentError: If the value is not one of the enum's values
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(repr(member.value) for member in enum_cls)
        raise InvalidArgumentError(
            f"{name} must be one of {allowed}, got {value!r}"
        ) from None

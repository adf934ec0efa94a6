"""
Conditions and policies.

A Condition is a small any-of predicate over the EnvironmentContext,
written as a list of terms in scenario files:

    expected_failure_under: ["kernel<4.7", "container:lxc", "ptmx-symlink"]

Supported terms:
- always, never
- container, container:<kind>
- virtualized, virtualization:<kind>
- kernel<X.Y, kernel<=X.Y, kernel>X.Y, kernel>=X.Y, kernel==X.Y
- no-mknod, ptmx-symlink, capability:<name>
- any term prefixed with "!" is negated
"""

from dataclasses import dataclass, field
from enum import Enum
import operator
import re
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..exceptions import ScenarioError
from .context import EnvironmentContext, CAN_MKNOD, PTMX_SYMLINK, parse_kernel_version

_KERNEL_RE = re.compile(r"^kernel\s*(<=|>=|==|<|>)\s*(\d+(?:\.\d+)*)$")
_KERNEL_OPS: Dict[str, Callable] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
}


def _pad(version: Tuple[int, ...], width: int) -> Tuple[int, ...]:
    return version + (0,) * (width - len(version))


def _compile_term(term: str) -> Callable[[EnvironmentContext], bool]:
    """Turn a single condition term into a predicate."""
    text = term.strip()
    if not text:
        raise ScenarioError("Empty condition term")

    if text.startswith("!"):
        inner = _compile_term(text[1:])
        return lambda ctx: not inner(ctx)

    if text == "always":
        return lambda ctx: True
    if text == "never":
        return lambda ctx: False
    if text == "container":
        return lambda ctx: ctx.container is not None
    if text.startswith("container:"):
        kind = text.split(":", 1)[1]
        return lambda ctx: ctx.container == kind
    if text == "virtualized":
        return lambda ctx: ctx.virtualization is not None
    if text.startswith("virtualization:"):
        kind = text.split(":", 1)[1]
        return lambda ctx: ctx.virtualization == kind
    if text == "no-mknod":
        return lambda ctx: not ctx.has(CAN_MKNOD)
    if text == "ptmx-symlink":
        return lambda ctx: ctx.has(PTMX_SYMLINK)
    if text.startswith("capability:"):
        name = text.split(":", 1)[1]
        return lambda ctx: ctx.has(name)

    match = _KERNEL_RE.match(text)
    if match:
        op = _KERNEL_OPS[match.group(1)]
        wanted = parse_kernel_version(match.group(2))

        def kernel_check(ctx: EnvironmentContext) -> bool:
            # unknown kernel never satisfies a version comparison
            if not ctx.kernel_version:
                return False
            width = max(len(ctx.kernel_version), len(wanted))
            return op(_pad(ctx.kernel_version, width), _pad(wanted, width))

        return kernel_check

    raise ScenarioError(f"Unknown condition term: {term!r}")


@dataclass(frozen=True)
class Condition:
    """Any-of composition of condition terms."""

    terms: Tuple[str, ...]
    _predicates: Tuple[Callable[[EnvironmentContext], bool], ...] = field(
        default=(), init=False, repr=False, compare=False
    )

    def __post_init__(self):
        if not self.terms:
            raise ScenarioError("A condition needs at least one term")
        object.__setattr__(
            self, "_predicates", tuple(_compile_term(t) for t in self.terms)
        )

    @classmethod
    def parse(cls, value: Union[str, Sequence[str]]) -> "Condition":
        if isinstance(value, str):
            terms = value.split("|")
        else:
            terms = list(value)
        return cls(terms=tuple(t.strip() for t in terms))

    def holds(self, context: EnvironmentContext) -> bool:
        return any(predicate(context) for predicate in self._predicates)

    def matching_terms(self, context: EnvironmentContext) -> List[str]:
        """Terms that hold for the context (for report details)."""
        return [
            term for term, predicate in zip(self.terms, self._predicates)
            if predicate(context)
        ]

    def __str__(self) -> str:
        return " | ".join(self.terms)


class PolicyKind(Enum):
    """How a failure of an assertion is judged."""

    REQUIRED = "required"
    EXPECTED_FAILURE = "expected_failure"


@dataclass(frozen=True)
class Policy:
    """Failure policy attached to every assertion.

    REQUIRED: a mismatch is a failure.
    EXPECTED_FAILURE: when the condition holds, a mismatch is an expected
    failure and a match is reported as a failure of the expectation.
    """

    kind: PolicyKind = PolicyKind.REQUIRED
    condition: Optional[Condition] = None
    reason: str = ""

    def __post_init__(self):
        if self.kind == PolicyKind.EXPECTED_FAILURE and self.condition is None:
            raise ScenarioError("expected-failure policy needs a condition")

    @classmethod
    def required(cls) -> "Policy":
        return cls()

    @classmethod
    def expected_failure_under(
        cls, condition: Union[Condition, str, Sequence[str]], reason: str = ""
    ) -> "Policy":
        if not isinstance(condition, Condition):
            condition = Condition.parse(condition)
        return cls(PolicyKind.EXPECTED_FAILURE, condition, reason)

    @property
    def is_required(self) -> bool:
        return self.kind == PolicyKind.REQUIRED

    def expects_failure(self, context: EnvironmentContext) -> bool:
        """Whether this policy predicts a failure in this context."""
        if self.kind != PolicyKind.EXPECTED_FAILURE:
            return False
        return self.condition.holds(context)

    @classmethod
    def from_value(cls, value) -> "Policy":
        """Parse the YAML form of a policy.

        Accepts "required", or a mapping with an expected_failure_under
        key (string or list of terms) and an optional reason.
        """
        if value is None or value == "required":
            return cls.required()
        if isinstance(value, dict) and "expected_failure_under" in value:
            return cls.expected_failure_under(
                value["expected_failure_under"], value.get("reason", "")
            )
        raise ScenarioError(f"Invalid policy: {value!r}")

    def to_value(self):
        if self.is_required:
            return "required"
        data = {"expected_failure_under": list(self.condition.terms)}
        if self.reason:
            data["reason"] = self.reason
        return data

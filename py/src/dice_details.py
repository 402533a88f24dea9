# Parse tree nodes for dice expressions and the ways they can be evaluated.
import logging
import math
import threading
import typing
from random import randint

from dice_utils import get_probability_loop_limit, trunc_div

log = logging.getLogger(__name__)

# Draws a uniform integer from an inclusive range, like random.randint.
Roller = typing.Callable[[int, int], int]


class DiceRuntimeError(RuntimeError):
    default_message = "Dice expression error."

    def __init__(self, message: str | None = None) -> None:
        self.message = message if message is not None else self.default_message
        super().__init__(self.message)


# Raised while building the tree, when some operand's possible values make an
# operation unsafe.
class MathematicalError(DiceRuntimeError):
    default_message = "The expression is mathematically invalid."


class DivideZeroFromZeroError(MathematicalError):
    default_message = "Divide zero from zero may occur."


class DivisionByZeroError(MathematicalError):
    default_message = "Division by zero may occur."


class DiceCountIsNegativeError(MathematicalError):
    default_message = (
        "There is a possibility that the number of times you roll the dice "
        "becomes a negative number."
    )


class DiceFacesIsNegativeError(MathematicalError):
    default_message = (
        "There is a possibility that the number of dice faces becomes a "
        "negative number."
    )


class NegativeExponentError(MathematicalError):
    default_message = "There is a possibility that an exponent becomes negative."


class ProbabilityTooComplexError(DiceRuntimeError):
    def __init__(self, expression: str, loops: int, limit: int) -> None:
        super().__init__(
            f"Computing the outcomes of {expression} needs {loops} steps "
            f"(limit {limit})."
        )
        self.expression = expression
        self.loops = loops
        self.limit = limit


# Memoized evaluation results, keyed by a node's rendered text.
# Entries live as long as the cache does; the key space is bounded by the
# distinct subexpressions actually evaluated.
class EvaluationCache:
    def __init__(self) -> None:
        self.probability: dict[str, frozenset[int]] = {}
        self.may_be_zero: dict[str, bool] = {}
        self.may_be_negative: dict[str, bool] = {}
        self._lock = threading.RLock()

    # Look up `key` in `table`, computing and storing the value on a miss.
    # The computation runs unlocked since it recurses into other lookups.
    def lookup(self, table: dict, key: str, compute: typing.Callable):
        with self._lock:
            if key in table:
                return table[key]
        value = compute()
        with self._lock:
            return table.setdefault(key, value)

    def clear(self):
        with self._lock:
            self.probability.clear()
            self.may_be_zero.clear()
            self.may_be_negative.clear()


# Shared by every tree built without an explicit cache.
DEFAULT_CACHE = EvaluationCache()


def single_roll(size: int, roller: Roller) -> int:
    if size == 0:
        return 0
    else:
        return roller(1, size)


def _resolve_roller(roller: Roller | None) -> Roller:
    return roller if roller is not None else randint


def _is_contiguous(values: frozenset[int]) -> bool:
    return len(values) == max(values) - min(values) + 1


# Syntax tree base class. Nodes are built bottom-up by the parser and never
# change afterwards.
class Node:
    def __init__(self, cache: EvaluationCache | None = None) -> None:
        self.cache = cache if cache is not None else DEFAULT_CACHE
        self._text = ""

    def __str__(self):
        return self.render()

    def __repr__(self):
        return f"<{type(self).__name__} {self.render()}>"

    # Fully parenthesized text of this expression. Also the cache key.
    def render(self) -> str:
        return self._text

    # One concrete outcome, drawing dice from `roller`.
    def sample(self, roller: Roller | None = None) -> int:
        raise NotImplementedError("Sampling missing for this expression.")

    def min(self) -> int:
        raise NotImplementedError("Minimum missing for this expression.")

    def max(self) -> int:
        raise NotImplementedError("Maximum missing for this expression.")

    def median(self) -> int | float:
        raise NotImplementedError("Median missing for this expression.")

    # Every value this expression can take, without likelihoods.
    def probability(self) -> frozenset[int]:
        raise NotImplementedError("Probability missing for this expression.")

    def may_be_zero(self) -> bool:
        raise NotImplementedError("Zero check missing for this expression.")

    def may_be_negative(self) -> bool:
        raise NotImplementedError("Negative check missing for this expression.")


class Integer(Node):
    def __init__(self, value: int, cache: EvaluationCache | None = None) -> None:
        super().__init__(cache)
        self.value = value
        self._text = str(value)

    def sample(self, roller=None):
        return self.value

    def min(self):
        return self.value

    def max(self):
        return self.value

    def median(self):
        return self.value

    def probability(self):
        return frozenset((self.value,))

    def may_be_zero(self):
        return self.value == 0

    def may_be_negative(self):
        return self.value < 0


# `count` dice, each with `faces` sides, summed.
# Both operands are checked up front so that no roll can go negative.
class DiceRoll(Node):
    def __init__(
        self, count: Node, faces: Node, cache: EvaluationCache | None = None
    ) -> None:
        super().__init__(cache)
        if count.may_be_negative():
            log.debug(f"Rejected dice count {count}: may be negative")
            raise DiceCountIsNegativeError()
        if faces.may_be_negative():
            log.debug(f"Rejected dice faces {faces}: may be negative")
            raise DiceFacesIsNegativeError()
        self.count = count
        self.faces = faces
        self._text = f"({count.render()}d{faces.render()})"

    # The count is rolled once; the faces are rolled again for every die.
    def sample(self, roller=None):
        roller = _resolve_roller(roller)
        total = 0
        for _ in range(self.count.sample(roller)):
            total += single_roll(self.faces.sample(roller), roller)
        return total

    def min(self):
        return self.count.min()

    def max(self):
        return self.count.max() * self.faces.max()

    def median(self):
        return (self.min() + self.max()) / 2

    def probability(self):
        return self.cache.lookup(
            self.cache.probability, self.render(), self._compute_probability
        )

    def _compute_probability(self) -> frozenset[int]:
        faces = self.faces.probability()
        top = max(faces)
        if top == 0:
            # every die is blank
            return frozenset((0,))
        # a zero-faced die rolls 0, otherwise each die lands in 1..top
        lowest_roll = 0 if 0 in faces else 1

        # c dice can total anything in c*lowest_roll..c*top; merge those spans
        spans: list[list[int]] = []
        for c in sorted(self.count.probability()):
            low, high = c * lowest_roll, c * top
            if spans and low <= spans[-1][1] + 1:
                spans[-1][1] = max(spans[-1][1], high)
            else:
                spans.append([low, high])
        log.debug(f"probability spans for {self}: {len(spans)}")

        outcomes: set[int] = set()
        for low, high in spans:
            outcomes.update(range(low, high + 1))
        return frozenset(outcomes)

    def may_be_zero(self):
        return self.count.may_be_zero() or self.faces.may_be_zero()

    def may_be_negative(self):
        return False


# Base class for the arithmetic operators.
# Subclasses provide `symbol` and the integer operation `apply`, and may refine
# the zero and negative checks before falling back to the full outcome set.
class BinaryOperation(Node):
    symbol = ""

    def __init__(
        self, left: Node, right: Node, cache: EvaluationCache | None = None
    ) -> None:
        super().__init__(cache)
        self.left = left
        self.right = right
        self._text = f"({left.render()}{self.symbol}{right.render()})"

    def apply(self, x: int, y: int) -> int:
        raise NotImplementedError(f"Operation missing for {self.symbol}")

    # Same operation over real numbers, used for medians.
    def apply_real(self, x: float, y: float) -> float:
        return self.apply(x, y)  # type: ignore

    def sample(self, roller=None):
        roller = _resolve_roller(roller)
        return self.apply(self.left.sample(roller), self.right.sample(roller))

    # Not tight when the operator isn't monotonic in both operands.
    def min(self):
        return self.apply(self.left.min(), self.right.min())

    def max(self):
        return self.apply(self.left.max(), self.right.max())

    # Operator applied to the medians, not the median of the combined outcomes.
    def median(self):
        return self.apply_real(float(self.left.median()), self.right.median())

    def probability(self):
        return self.cache.lookup(
            self.cache.probability, self.render(), self._compute_probability
        )

    def _compute_probability(self) -> frozenset[int]:
        lefts = self.left.probability()
        rights = self.right.probability()
        loops = len(lefts) * len(rights)
        limit = get_probability_loop_limit()
        if limit is not None and loops > limit:
            raise ProbabilityTooComplexError(self.render(), loops, limit)
        log.debug(f"probability loop count for {self}: {loops}")
        return frozenset(self.apply(x, y) for x in lefts for y in rights)

    def may_be_zero(self):
        return self.cache.lookup(
            self.cache.may_be_zero, self.render(), self._compute_may_be_zero
        )

    def _compute_may_be_zero(self) -> bool:
        return 0 in self.probability()

    def may_be_negative(self):
        return self.cache.lookup(
            self.cache.may_be_negative, self.render(), self._compute_may_be_negative
        )

    def _compute_may_be_negative(self) -> bool:
        return min(self.probability()) < 0


class Add(BinaryOperation):
    symbol = "+"

    def apply(self, x, y):
        return x + y

    def _compute_probability(self):
        lefts = self.left.probability()
        rights = self.right.probability()
        if _is_contiguous(lefts) and _is_contiguous(rights):
            return frozenset(range(min(lefts) + min(rights), max(lefts) + max(rights) + 1))
        return super()._compute_probability()

    # Uses the lowest outcomes rather than min(), which isn't a lower bound
    # under subtraction or blank dice.
    def _compute_may_be_zero(self):
        if min(self.left.probability()) > 0 and min(self.right.probability()) > 0:
            return False
        return super()._compute_may_be_zero()

    def _compute_may_be_negative(self):
        if not (self.left.may_be_negative() or self.right.may_be_negative()):
            return False
        return super()._compute_may_be_negative()


class Sub(BinaryOperation):
    symbol = "-"

    def apply(self, x, y):
        return x - y

    def _compute_probability(self):
        lefts = self.left.probability()
        rights = self.right.probability()
        if _is_contiguous(lefts) and _is_contiguous(rights):
            return frozenset(range(min(lefts) - max(rights), max(lefts) - min(rights) + 1))
        return super()._compute_probability()


# The negative check only asks whether either side may be negative, so two
# negative factors still report a possibly negative product.
class Mul(BinaryOperation):
    symbol = "*"

    def apply(self, x, y):
        return x * y

    def _compute_may_be_zero(self):
        if not (self.left.may_be_zero() or self.right.may_be_zero()):
            return False
        return super()._compute_may_be_zero()

    def _compute_may_be_negative(self):
        if not (self.left.may_be_negative() or self.right.may_be_negative()):
            return False
        return super()._compute_may_be_negative()


# Integer division rounding toward zero. The divisor is checked up front.
class Div(BinaryOperation):
    symbol = "/"

    def __init__(
        self, left: Node, right: Node, cache: EvaluationCache | None = None
    ) -> None:
        if left.may_be_zero() and right.may_be_zero():
            log.debug(f"Rejected division {left}/{right}: both sides may be zero")
            raise DivideZeroFromZeroError()
        if right.may_be_zero():
            log.debug(f"Rejected division {left}/{right}: divisor may be zero")
            raise DivisionByZeroError()
        super().__init__(left, right, cache)

    def apply(self, x, y):
        return trunc_div(x, y)

    # Medians can reach zero even though no outcome of the divisor does.
    def apply_real(self, x, y):
        if y == 0:
            if x == 0:
                return math.nan
            return math.copysign(math.inf, x)
        return x / y

    # Bounds of the divisor may be zero for the same reason; fall back to the
    # outcome set then.
    def min(self):
        if self.right.min() == 0:
            return min(self.probability())
        return super().min()

    def max(self):
        if self.right.max() == 0:
            return max(self.probability())
        return super().max()

    # A truncated quotient is zero exactly when |x| < |y|.
    def _compute_may_be_zero(self):
        smallest = min(abs(x) for x in self.left.probability())
        largest = max(abs(y) for y in self.right.probability())
        return smallest < largest

    def _compute_may_be_negative(self):
        if not (self.left.may_be_negative() or self.right.may_be_negative()):
            return False
        return super()._compute_may_be_negative()


class Pow(BinaryOperation):
    symbol = "^"

    def __init__(
        self, base: Node, exponent: Node, cache: EvaluationCache | None = None
    ) -> None:
        if exponent.may_be_negative():
            log.debug(f"Rejected exponent {exponent}: may be negative")
            raise NegativeExponentError()
        super().__init__(base, exponent, cache)

    @property
    def base(self) -> Node:
        return self.left

    @property
    def exponent(self) -> Node:
        return self.right

    def apply(self, x, y):
        return x**y

    def apply_real(self, x, y):
        return x**y

    def _compute_may_be_zero(self):
        if not (self.left.may_be_zero() or self.right.may_be_zero()):
            return False
        return super()._compute_may_be_zero()

    # Exponents are never negative, so a non-negative base gives a non-negative power.
    def _compute_may_be_negative(self):
        if not self.left.may_be_negative():
            return False
        return super()._compute_may_be_negative()

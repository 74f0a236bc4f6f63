"""Filter and key condition builders

Modelled on ``boto3.dynamodb.conditions`` so the DynamoDB backend can
translate them one-to-one, while the SQL and memory backends evaluate them
against plain item dicts.
"""

from typing import Any, Dict

_MISSING = object()


class Condition:
    """Post-filter predicate evaluated against a stored item"""

    def matches(self, item: Dict[str, Any]) -> bool:
        raise NotImplementedError

    def __and__(self, other: "Condition") -> "Condition":
        return And(self, other)

    def __or__(self, other: "Condition") -> "Condition":
        return Or(self, other)


class Comparison(Condition):
    def __init__(self, name: str, operator: str, value: Any):
        self.name = name
        self.operator = operator
        self.value = value

    def matches(self, item):
        actual = item.get(self.name, _MISSING)
        if actual is _MISSING:
            return self.operator == "ne"
        if self.operator == "eq":
            return actual == self.value
        if self.operator == "ne":
            return actual != self.value
        raise ValueError(f"Unsupported filter operator: {self.operator}")

    def __repr__(self):
        return f"Attr({self.name!r}).{self.operator}({self.value!r})"


class And(Condition):
    def __init__(self, left: Condition, right: Condition):
        self.left = left
        self.right = right

    def matches(self, item):
        return self.left.matches(item) and self.right.matches(item)

    def __repr__(self):
        return f"({self.left!r} & {self.right!r})"


class Or(Condition):
    def __init__(self, left: Condition, right: Condition):
        self.left = left
        self.right = right

    def matches(self, item):
        return self.left.matches(item) or self.right.matches(item)

    def __repr__(self):
        return f"({self.left!r} | {self.right!r})"


class Attr:
    """Non-key attribute reference for post-filters"""

    def __init__(self, name: str):
        self.name = name

    def eq(self, value: Any) -> Comparison:
        return Comparison(self.name, "eq", value)

    def ne(self, value: Any) -> Comparison:
        return Comparison(self.name, "ne", value)


class KeyCondition:
    """Sort-key condition applied by the range scan itself"""

    def __init__(self, name: str, operator: str, *values: Any):
        self.name = name
        self.operator = operator
        self.values = values

    def matches(self, value: Any) -> bool:
        if value is None:
            return False
        op = self.operator
        if op == "eq":
            return value == self.values[0]
        if op == "lt":
            return value < self.values[0]
        if op == "lte":
            return value <= self.values[0]
        if op == "gt":
            return value > self.values[0]
        if op == "gte":
            return value >= self.values[0]
        if op == "between":
            return self.values[0] <= value <= self.values[1]
        if op == "begins_with":
            return str(value).startswith(self.values[0])
        raise ValueError(f"Unsupported key operator: {op}")

    def __repr__(self):
        return f"Key({self.name!r}).{self.operator}{self.values!r}"


class Key:
    """Sort-key reference for range conditions"""

    def __init__(self, name: str):
        self.name = name

    def eq(self, value):
        return KeyCondition(self.name, "eq", value)

    def lt(self, value):
        return KeyCondition(self.name, "lt", value)

    def lte(self, value):
        return KeyCondition(self.name, "lte", value)

    def gt(self, value):
        return KeyCondition(self.name, "gt", value)

    def gte(self, value):
        return KeyCondition(self.name, "gte", value)

    def between(self, low, high):
        return KeyCondition(self.name, "between", low, high)

    def begins_with(self, prefix: str):
        return KeyCondition(self.name, "begins_with", prefix)


def any_of(name: str, values) -> Condition:
    """OR-chain of equality terms, ``Attr(name).eq(v1) | Attr(name).eq(v2) ...``"""
    values = list(values)
    if not values:
        raise ValueError("any_of needs at least one value")
    condition = Attr(name).eq(values[0])
    for value in values[1:]:
        condition = condition | Attr(name).eq(value)
    return condition

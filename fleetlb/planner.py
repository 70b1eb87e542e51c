from __future__ import annotations

from typing import Sequence

from .errors import PlanningError
from .models import RedirectionRule, ReplicaDescriptor


def plan_rules(
    replicas: Sequence[ReplicaDescriptor],
    weights: Sequence[float] | None = None,
) -> list[RedirectionRule]:
    """Turn an ordered fleet into first-match-wins probabilistic rules.

    Rule ``i`` only sees traffic that no earlier rule claimed, so its match
    probability is conditional: ``w_i / (w_i + ... + w_{n-1})``. For equal
    weights that is ``1 / (n - i)``, which gives every destination ``1/n`` of
    the original traffic. The last rule is always unconditional so no
    traffic is left unmatched by rounding.
    """
    n = len(replicas)
    if n < 2:
        raise PlanningError(f"need at least 2 destinations to split traffic, got {n}")
    uniform = weights is None
    if weights is None:
        weights = [1.0] * n
    if len(weights) != n:
        raise PlanningError(f"got {len(weights)} weights for {n} destinations")
    if any(w <= 0 for w in weights):
        raise PlanningError("weights must be positive")

    rules: list[RedirectionRule] = []
    remaining = float(sum(weights))
    for i, r in enumerate(replicas):
        if not r.ip:
            raise PlanningError(f"destination {i} ({r.name}) has no address", index=i)
        if i == n - 1:
            rules.append(RedirectionRule(destination=r.destination))
            break
        if uniform:
            p = 1.0 / (n - i)
        else:
            p = weights[i] / remaining
        rules.append(RedirectionRule(destination=r.destination, probability=p))
        remaining -= weights[i]
    return rules


def effective_shares(rules: Sequence[RedirectionRule]) -> list[float]:
    """Unconditional share of traffic each rule ends up taking."""
    shares: list[float] = []
    reach = 1.0
    for rule in rules:
        p = 1.0 if rule.probability is None else rule.probability
        shares.append(reach * p)
        reach *= 1.0 - p
    return shares

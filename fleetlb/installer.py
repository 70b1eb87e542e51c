from __future__ import annotations

from typing import Protocol, Sequence

from .errors import InstallationError, PacketFilterError
from .models import RedirectionRule


class PacketFilter(Protocol):
    def append_rule(
        self,
        match_port: str,
        destination: str,
        probability: str | None = None,
        protocol: str = "tcp",
    ) -> None: ...


class RuleInstaller:
    """Appends planned rules to the filter chain in plan order.

    Install order is evaluation order. The first failing append stops the
    run; rules appended before it stay in the chain.
    """

    def __init__(self, packet_filter: PacketFilter):
        self.packet_filter = packet_filter

    def install(self, rules: Sequence[RedirectionRule], match_port: str) -> int:
        for i, rule in enumerate(rules):
            try:
                self.packet_filter.append_rule(
                    str(match_port),
                    rule.destination,
                    probability=rule.probability_arg(),
                    protocol="tcp",
                )
            except PacketFilterError as e:
                raise InstallationError(str(e), index=i, installed=i) from e
        return len(rules)

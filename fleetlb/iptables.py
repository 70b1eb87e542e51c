from __future__ import annotations

import subprocess
from typing import Callable, Sequence

from .errors import PacketFilterError
from . import settings as config

Runner = Callable[[Sequence[str]], "subprocess.CompletedProcess[str]"]


def _run(argv: Sequence[str]) -> "subprocess.CompletedProcess[str]":
    return subprocess.run(list(argv), capture_output=True, text=True, check=False)


def build_rule_args(
    match_port: str,
    destination: str,
    probability: str | None = None,
    protocol: str = "tcp",
    table: str = "nat",
    chain: str = "PREROUTING",
) -> list[str]:
    """Arguments for one appended DNAT rule.

    ``probability`` is the already formatted ``--probability`` value; when it
    is None the rule matches unconditionally.
    """
    args = ["-t", table, "-A", chain, "-p", protocol, "--dport", str(match_port)]
    if probability is not None:
        args += ["-m", "statistic", "--mode", "random", "--probability", probability]
    args += ["-j", "DNAT", "--to-destination", destination]
    return args


class IptablesClient:
    """Packet filter client that only ever appends to one chain.

    The chain is never listed, flushed or read back; rules accumulate across
    deployments until something outside this process resets it.
    """

    def __init__(
        self,
        binary: str | None = None,
        table: str | None = None,
        chain: str | None = None,
        runner: Runner | None = None,
    ):
        self.binary = binary or config.settings.iptables_bin
        self.table = table or config.settings.nat_table
        self.chain = chain or config.settings.chain
        self._run = runner or _run

    def append_rule(
        self,
        match_port: str,
        destination: str,
        probability: str | None = None,
        protocol: str = "tcp",
    ) -> None:
        argv = [self.binary] + build_rule_args(
            match_port,
            destination,
            probability=probability,
            protocol=protocol,
            table=self.table,
            chain=self.chain,
        )
        try:
            proc = self._run(argv)
        except OSError as e:
            raise PacketFilterError(f"iptables error: {e}") from e
        if proc.returncode != 0:
            output = ((proc.stdout or "") + (proc.stderr or "")).strip()
            raise PacketFilterError(f"iptables error: exit status {proc.returncode}\n{output}")

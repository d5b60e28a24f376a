"""DNS cache flush and network stack reset."""

from __future__ import annotations

from ..config import MatchRules
from ..contracts import Step, StepContext, SystemSnapshot


def _always(ctx: StepContext) -> bool:
    return True


FLUSH_DNS = Step(
    name="flush-dns",
    description="flush the DNS resolver cache",
    predicate=_always,
    action=lambda ctx: ctx.system.flush_dns(),
    idempotent=False,
    destructive=False,
)

# Resets Winsock and TCP/IP; static addressing may be lost until restore.
RESET_NETWORK = Step(
    name="reset-network",
    description="reset the network stack (restart required)",
    predicate=_always,
    action=lambda ctx: ctx.system.reset_network_stack(),
    idempotent=False,
    destructive=True,
    confirmations=2,
)


def plan_dns_flush(snapshot: SystemSnapshot, rules: MatchRules) -> list[Step]:
    return [FLUSH_DNS]


def plan_network_reset(snapshot: SystemSnapshot, rules: MatchRules) -> list[Step]:
    return [RESET_NETWORK]

"""FleetLB.

Minimal control plane that provisions identical container replicas behind a
single host port and spreads inbound traffic across them with cascading
iptables ``statistic`` DNAT rules:
 - sequential replica provisioning (create, start, inspect)
 - cascading conditional-probability rule planning
 - ordered rule installation into the NAT PREROUTING chain

There is no proxy process and no health checking; the kernel does the routing.
"""

from cluster_policy.exceptions.policy_exceptions import PolicyValidationError
from cluster_policy.schemas.environment import (
    ComputeIngressSource,
    EdgeEgressScope,
    Environment,
    InboundPort,
)
from cluster_policy.schemas.rule import Direction, GroupRole, Peer, PortRange, SymbolicRule


def build_rule_table(environment: Environment) -> list[SymbolicRule]:
    """Translate an environment's policy options into symbolic rules.

    Order is fixed: edge inbound, edge outbound, compute inbound, compute
    outbound. Rule indexes reported by validation refer to this order.
    """
    options = environment.policy
    if options.is_permissive and not options.allow_legacy_open:
        raise PolicyValidationError(
            f"Environment {environment.name.value} requests the legacy open policy "
            f"without allow_legacy_open."
        )

    if options.inbound_port == InboundPort.SINGLE_PORT:
        edge_port = PortRange.tcp(environment.listener_port)
        edge_description = f"Allow inbound HTTP on port {environment.listener_port}"
    else:
        edge_port = PortRange.all_tcp()
        edge_description = "Allow all inbound traffic"

    if options.edge_egress_scope == EdgeEgressScope.FLEET_CIDR:
        edge_egress = Peer.network()
        edge_egress_description = "Allow all outbound to the compute fleet"
    else:
        edge_egress = Peer.any_ipv4()
        edge_egress_description = "Allow all outbound traffic"

    if options.compute_ingress_source == ComputeIngressSource.EDGE_GROUP_IDENTITY:
        compute_ingress = Peer.group(GroupRole.EDGE.value)
        compute_ingress_description = "Allow all inbound from the load balancer"
    else:
        compute_ingress = Peer.any_ipv4()
        compute_ingress_description = "Allow all inbound traffic"

    return [
        SymbolicRule(
            group=GroupRole.EDGE.value,
            direction=Direction.INBOUND,
            peer=Peer.any_ipv4(),
            port=edge_port,
            description=edge_description,
        ),
        SymbolicRule(
            group=GroupRole.EDGE.value,
            direction=Direction.OUTBOUND,
            peer=edge_egress,
            port=PortRange.all_tcp(),
            description=edge_egress_description,
        ),
        SymbolicRule(
            group=GroupRole.COMPUTE.value,
            direction=Direction.INBOUND,
            peer=compute_ingress,
            port=PortRange.all_tcp(),
            description=compute_ingress_description,
        ),
        SymbolicRule(
            group=GroupRole.COMPUTE.value,
            direction=Direction.OUTBOUND,
            peer=Peer.any_ipv4(),
            port=PortRange.all_tcp(),
            description="Allow all outbound to the internet",
        ),
    ]

"""
Fog microservice placement package.

Modules:
- topology: fog nodes, tree and cluster links, latencies and routing tables
- application: module/edge graphs; resolver: placement layering
- ledger: per-node resource snapshots and device states
- placement: placement heuristics (Edgeward, BestFit, ClosestFit, MaxFit,
  Random, MultiOpt, simulated annealing, ant colony, ILP)
- decision: turns placements into deployment plans
- node, orchestrator, coordinator: the deployment protocol in virtual time
- scenario: scenario files and end-to-end simulations
- api: REST API surface for simulate/snapshot
"""

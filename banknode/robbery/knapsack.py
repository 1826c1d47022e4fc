"""
Sparse 0/1 knapsack used to plan a robbery.

The weight of a set of bank nodes is the number of clients it affects and its
value is the money it holds. For every reachable weight the table keeps the
richest set of nodes with exactly that weight; the plan is the lightest
entry whose money reaches the target (ties go to the richer entry).
"""
from collections import namedtuple

BankNodeSnapshot = namedtuple("BankNodeSnapshot", ["ip", "total_amount", "client_count"])
RobberyPlan = namedtuple("RobberyPlan", ["ips", "money", "clients"])


class RobberyState:
    __slots__ = ("money", "ips")

    def __init__(self, money, ips):
        self.money = money
        self.ips = ips


def build_states(nodes):
    states = {0: RobberyState(0, ())}
    for node in nodes:
        # each node may be taken once: only extend states that existed before it
        for weight, state in list(states.items()):
            new_weight = weight + node.client_count
            new_money = state.money + node.total_amount
            current = states.get(new_weight)
            if current is None or new_money > current.money:
                states[new_weight] = RobberyState(new_money, state.ips + (node.ip,))
    return states


def plan_robbery(nodes, target):
    """Cheapest (in affected clients) set of nodes holding at least target, or None."""
    best_weight = None
    best = None
    for weight, state in build_states(nodes).items():
        if state.money < target:
            continue
        if best is None or weight < best_weight or (weight == best_weight and state.money > best.money):
            best_weight, best = weight, state
    if best is None:
        return None
    return RobberyPlan(list(best.ips), best.money, best_weight)

"""Actions that act on a node's uplink as a whole."""

from engine.action import Action, ActionId


class UplinkCheckAction(Action):
    """Report whether the machine behind the node still exists."""
    TYPE = 'uplinkCheck'

    def __init__(self, scope: str):
        super().__init__(ActionId(self.TYPE, scope))

    def call(self, cluster, node) -> None:
        node.uplink.check()


class DestroyNodesAction(Action):
    """Destroy everything the node's backend can find, castle-made or not."""
    TYPE = 'destroyNodes'

    def __init__(self, scope: str):
        super().__init__(ActionId(self.TYPE, scope))

    def call(self, cluster, node) -> None:
        node.log.info(f"*** {node.node_name}: Destroying all the nodes for uplink "
                      f"{type(node.uplink).__name__}.")
        node.uplink.shutdown_all()

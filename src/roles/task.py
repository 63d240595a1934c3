from dataclasses import dataclass, field

from actions.task import TaskStartAction, TaskStatusAction, TaskStopAction
from roles.base import Role


@dataclass
class TaskRole(Role):
    """Trogdor tasks to run on the cluster.

    task_specs maps task id to a trogdor task spec. %{bootstrapServers}
    inside a spec is replaced before the task is submitted.
    """
    TYPE = 'task'

    initial_delay_ms: int = 0
    task_specs: dict = field(default_factory=dict)

    def create_actions(self, node_name: str) -> list:
        return [
            TaskStartAction(node_name, self),
            TaskStatusAction(node_name, self),
            TaskStopAction(node_name, self),
        ]

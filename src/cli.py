#!/usr/bin/env python3
"""CLI entry point for castle-tool.

Runs the closure of one or more targets over a cluster:

    castle-tool -c cluster.json -w /tmp/work up
    castle-tool -w /tmp/work status
    castle-tool -w /tmp/work down
    castle-tool -w /tmp/work brokerStop:node2
    castle-tool -w /tmp/work ssh node0 -- ls /mnt

The first run reads the cluster file given with -c. Every later run in the
same working directory reads the cluster.conf written there, which records
the live state (container names, instance ids, ...).

Options default to environment variables:
    CASTLE_CLUSTER_INPUT_PATH  -c/--cluster
    CASTLE_WORKING_DIRECTORY   -w/--working-directory
    CASTLE_VERBOSE             -v/--verbose
    CASTLE_TARGETS             targets, whitespace separated
"""

import argparse
import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import Optional

import ssh_cli
from cluster import CastleCluster, CastleClusterSpec
from common import full_stack_trace
from config import CLUSTER_FILE_NAME, CastleEnvironment, ConfigError
from engine.lifecycle import ReturnCode, ShutdownManager
from engine.registry import all_stage_actions
from engine.state import ActionState

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

TARGET_HELP = """\
common targets:
  up            create the nodes, set them up and start every daemon and task
  status        report daemon and task status through the exit code
  down          stop everything, save the logs and destroy the nodes
  destroyNodes  destroy every node the backends can find
  ssh           run a command on nodes: ssh <node...|all> [--] [command...]

A role name such as trogdorAgent brings up that role on every node that has it.
A target may be restricted to one node with type:scope, e.g. brokerStop:node2.

exit codes: 0 success, 1 in progress, 2 cluster failed, 3 tool failed
"""


def get_version():
    """Get version from git tags."""
    try:
        result = subprocess.run(
            ['git', 'describe', '--tags', '--abbrev=0'],
            capture_output=True, text=True,
            cwd=Path(__file__).parent,
            check=False,
        )
        return result.stdout.strip() if result.returncode == 0 else 'dev'
    except OSError:
        return 'dev'


def _env_flag(name: str) -> bool:
    return os.environ.get(name, '').strip().lower() in ('1', 'true', 'yes', 'on')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='castle-tool',
        description='Castle - create, run and tear down Kafka test clusters',
        epilog=TARGET_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'castle-tool {get_version()}'
    )
    parser.add_argument(
        '--cluster', '-c',
        default=os.environ.get('CASTLE_CLUSTER_INPUT_PATH'),
        help='Input cluster file (JSON or YAML). Not allowed once the working '
             f'directory holds a {CLUSTER_FILE_NAME}'
    )
    parser.add_argument(
        '--working-directory', '-w',
        default=os.environ.get('CASTLE_WORKING_DIRECTORY'),
        help='Directory for logs, ssh keys and the output cluster file'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        default=_env_flag('CASTLE_VERBOSE'),
        help='Enable debug logging'
    )
    parser.add_argument(
        'targets',
        nargs=argparse.REMAINDER,
        help='Targets to run (see below)'
    )
    return parser


def resolve_cluster_path(cluster_arg: Optional[str], working_directory: Path) -> Path:
    """Pick the cluster file for this run.

    Raises:
        ConfigError: If -c conflicts with an existing cluster.conf, or no
            usable cluster file was given
    """
    output_path = working_directory / CLUSTER_FILE_NAME
    if output_path.exists():
        if cluster_arg:
            raise ConfigError(f"The working directory already contains {output_path}; "
                              "you cannot also pass --cluster.")
        return output_path
    if not cluster_arg:
        raise ConfigError(f"No {CLUSTER_FILE_NAME} found in {working_directory}; "
                          "you must pass --cluster.")
    cluster_path = Path(cluster_arg)
    if not cluster_path.is_file():
        raise ConfigError(f"Cluster file {cluster_path} does not exist.")
    return cluster_path


def run_targets(cluster: CastleCluster, targets: list[str]) -> None:
    """Run the closure of targets and log a summary."""
    scheduler = cluster.create_scheduler(targets, all_stage_actions(cluster.nodes))
    logger.info(f"Running {', '.join(targets)}: {len(scheduler.action_ids)} action(s) on "
                f"{len(cluster.nodes)} node(s)")
    with scheduler:
        result = scheduler.await_completion(cluster.conf.global_timeout)
    done = len(result.ids_in_state(ActionState.DONE))
    logger.info(f"Completed {done} of {len(result.statuses)} action(s); "
                f"{len(result.failed)} failed, {len(result.skipped)} skipped")
    if result.timed_out:
        logger.error("Timed out after %d second(s).", cluster.conf.global_timeout)


def run(args: argparse.Namespace, shutdown_manager: ShutdownManager) -> int:
    """Load the cluster and run the requested targets.

    Shutdown hooks run before the cluster closes, since they may still need
    its uplinks.

    Returns:
        Process exit status
    """
    working_directory = Path(args.working_directory).absolute()
    cluster_path = resolve_cluster_path(args.cluster, working_directory)
    working_directory.mkdir(parents=True, exist_ok=True)
    spec = CastleClusterSpec.load(cluster_path)
    env = CastleEnvironment(cluster_path, working_directory)
    logger.debug(f"Loaded {spec} from {cluster_path}")

    exit_status = None
    with CastleCluster(env, shutdown_manager, spec) as cluster:
        try:
            if ssh_cli.SSH in args.targets:
                ssh_args = ssh_cli.parse(cluster.nodes, args.targets)
                exit_status = ssh_cli.run(cluster, ssh_args)
            else:
                run_targets(cluster, args.targets)
        except Exception as e:
            logger.error("Unexpected error: %s", full_stack_trace(e))
            shutdown_manager.change_return_code(ReturnCode.TOOL_FAILED)
        finally:
            shutdown_manager.shutdown_normally()
    return_code = shutdown_manager.return_code
    if exit_status is not None and return_code == ReturnCode.SUCCESS:
        return exit_status
    return int(return_code)


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point. Returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.targets:
        args.targets = os.environ.get('CASTLE_TARGETS', '').split()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.targets:
        parser.print_help()
        return 0
    if not args.working_directory:
        parser.error('You must specify a working directory with -w or CASTLE_WORKING_DIRECTORY.')

    shutdown_manager = ShutdownManager()
    shutdown_manager.install()
    try:
        return run(args, shutdown_manager)
    except Exception as e:
        logger.error("castle-tool failed: %s", full_stack_trace(e))
        shutdown_manager.change_return_code(ReturnCode.TOOL_FAILED)
        shutdown_manager.shutdown_normally()
        return int(ReturnCode.TOOL_FAILED)


if __name__ == '__main__':
    sys.exit(main())

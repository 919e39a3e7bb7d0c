#!/usr/bin/env python3
"""
KUBERELEASE CLI
---------------
Offline operator tooling around the lifecycle core. Works from files on
disk, without a package-manager connection:

    kuberelease values release.yaml            merged values for a HelmRelease
    kuberelease plan release.yaml manifest.yaml  ownership batches it would apply

Author: KubeRelease Team
Date: 2026-10-18
"""

import sys
import argparse
import dataclasses
import logging
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from ruamel.yaml import YAML, YAMLError

from kuberelease.core import events
from kuberelease.core.errors import InputError
from kuberelease.core.events import EventRecorder
from kuberelease.core.models import ManagerConfig, ReleaseDescriptor
from kuberelease.cli.formatter import ReleaseFormatter
from kuberelease.manifest.annotator import AnnotationReport, namespaced_resource_map
from kuberelease.manifest.parser import iter_objects
from kuberelease.values.sources import ValueFileLoader, ValuesComposer, dump_values

VERSION = "0.1.0"

console = Console()
logger = logging.getLogger("kuberelease.cli")


def load_descriptor(path: str) -> ReleaseDescriptor:
    """Reads the first HelmRelease document from a YAML file."""
    try:
        docs = [d for d in YAML(typ="safe").load_all(Path(path).read_text(encoding="utf-8-sig"))
                if d is not None]
    except OSError as e:
        raise InputError(path, f"cannot read {path}: {e}") from e
    except YAMLError as e:
        raise InputError(path, f"malformed YAML in {path}: {e}") from e

    for doc in docs:
        if isinstance(doc, dict) and doc.get("kind") == "HelmRelease":
            return ReleaseDescriptor.from_resource(doc)
    raise InputError(path, f"no HelmRelease document found in {path}")


class KubeReleaseCLI:
    """
    CLI wrapper that translates user commands into core calls.
    """

    def __init__(self, console: Console = console):
        self.console = console
        self.formatter = ReleaseFormatter(console)
        self.config = ManagerConfig()
        self.parser = argparse.ArgumentParser(
            prog="kuberelease",
            description="KubeRelease - HelmRelease values and ownership tooling",
        )
        self._setup_args()

    def _setup_args(self):
        self.parser.add_argument("--version", action="version", version=f"kuberelease v{VERSION}")
        self.parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
        subparsers = self.parser.add_subparsers(dest="command", metavar="Command")

        values_parser = subparsers.add_parser("values", help="Print merged values for a HelmRelease")
        values_parser.add_argument("descriptor", help="HelmRelease YAML file")
        values_parser.add_argument("--skip-secrets", action="store_true",
                                   help="Ignore valueFileSecrets instead of failing")
        values_parser.add_argument("--http-timeout", type=float, default=self.config.http_timeout,
                                   help="Timeout for remote value files (seconds)")

        plan_parser = subparsers.add_parser("plan", help="Show ownership annotation batches")
        plan_parser.add_argument("descriptor", help="HelmRelease YAML file")
        plan_parser.add_argument("manifest", help="Rendered release manifest")
        plan_parser.add_argument("--namespace", default=None,
                                 help="Release namespace (default: the HelmRelease namespace)")

    def cmd_values(self, args: argparse.Namespace) -> int:
        descriptor = load_descriptor(args.descriptor)
        if descriptor.value_secrets:
            if not args.skip_secrets:
                names = ", ".join(s.name for s in descriptor.value_secrets)
                raise InputError("secrets", f"value secrets ({names}) need a cluster; "
                                            f"use --skip-secrets to ignore them")
            descriptor = dataclasses.replace(descriptor, value_secrets=())

        composer = ValuesComposer(ValueFileLoader(timeout=args.http_timeout))
        merged = composer.compose(descriptor)
        self.formatter.show_values(descriptor.get_release_name(), dump_values(merged))
        return 0

    def cmd_plan(self, args: argparse.Namespace) -> int:
        descriptor = load_descriptor(args.descriptor)
        try:
            manifest = Path(args.manifest).read_text(encoding="utf-8-sig")
        except OSError as e:
            raise InputError(args.manifest, f"cannot read {args.manifest}: {e}") from e

        recorder = EventRecorder()
        release_name = descriptor.get_release_name()
        namespace = args.namespace or descriptor.effective_namespace
        objs = iter_objects(manifest, sink=recorder, release=release_name)

        report = AnnotationReport(marker=descriptor.resource_id(),
                                  batches=namespaced_resource_map(objs, namespace))
        self.formatter.show_plan(release_name, report, recorder.messages(events.WARNING))
        return 0

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Primary routing entry point."""
        args = self.parser.parse_args(argv)
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            format="%(message)s",
            handlers=[RichHandler(console=self.console, show_path=False)],
        )

        commands = {"values": self.cmd_values, "plan": self.cmd_plan}
        if args.command not in commands:
            self.parser.print_help()
            return 0

        try:
            return commands[args.command](args)
        except InputError as e:
            logger.debug(f"{args.command} failed on {e.source}", exc_info=True)
            self.formatter.show_error(str(e))
            return 1


def main():
    """Application entry point with interrupt handling."""
    try:
        sys.exit(KubeReleaseCLI().run())
    except KeyboardInterrupt:
        console.print("\n[bold red]Terminated by user.[/bold red]")
        sys.exit(1)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
KUBESWARM CLI
-------------
Operator-facing entry point for the provisioning helpers:

  resources       size an IPFS container for a storage request
  identity        generate a node identity (peer ID + private key)
  cluster-secret  generate a cluster secret
  swarm-key       generate a private swarm pre-shared key
  bundle          print a Secret manifest with all cluster key material
  apply           create-or-patch manifests against a cluster

Author: KubeSwarm Team
Date: 2026-10-18
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from ruamel.yaml import YAML

from kubeswarm.backends.k8s import KubernetesBackend
from kubeswarm.backends.memory import InMemoryBackend
from kubeswarm.cli.formatter import SwarmFormatter
from kubeswarm.core.engine import SyncEngine
from kubeswarm.core.errors import KubeSwarmError
from kubeswarm.identity.bundle import build_cluster_secret_data
from kubeswarm.identity.keys import IdentityProvisioner
from kubeswarm.manifests.loader import ManifestLoader
from kubeswarm.rules.sizing import ipfs_container_resources, parse_storage_size

VERSION = "0.1.0"

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_REQUEUE = 2

# Diagnostics go to stderr so generated material on stdout stays pipeable.
console = Console(stderr=True)

logger = logging.getLogger("kubeswarm.cli")


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


class KubeSwarmCLI:
    """
    CLI wrapper that translates user commands into provisioning actions.
    """

    def __init__(self, provisioner: Optional[IdentityProvisioner] = None,
                 out: Optional[Console] = None):
        self.provisioner = provisioner or IdentityProvisioner()
        self.out = out or Console()
        self.formatter = SwarmFormatter(self.out)
        self.parser = argparse.ArgumentParser(
            prog="kubeswarm",
            description="KubeSwarm - provisioning helpers for IPFS clusters on Kubernetes",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self._setup_args()

    def _setup_args(self):
        """Configures the command-line flags and subcommands."""
        self.parser.add_argument("-v", "--version", action="version", version=f"kubeswarm v{VERSION}")
        self.parser.add_argument("--log-level", default="INFO",
                                 choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                                 help="Logging verbosity (default: INFO)")
        subparsers = self.parser.add_subparsers(dest="command", metavar="Command")

        res_parser = subparsers.add_parser("resources", help="Size an IPFS container for a storage request")
        res_parser.add_argument("storage", help="Bytes or a quantity such as 16Ti or 500Gi")
        res_parser.add_argument("--json", action="store_true", help="Print JSON")

        id_parser = subparsers.add_parser("identity", help="Generate a node identity")
        id_parser.add_argument("--json", action="store_true", help="Print JSON")

        subparsers.add_parser("cluster-secret", help="Generate a cluster secret")
        subparsers.add_parser("swarm-key", help="Generate a private swarm key")

        bundle_parser = subparsers.add_parser("bundle", help="Print a Secret manifest with cluster key material")
        bundle_parser.add_argument("--name", required=True, help="Secret name")
        bundle_parser.add_argument("--namespace", default=None, help="Secret namespace")
        bundle_parser.add_argument("--replicas", type=int, default=1, help="Number of node identities")
        bundle_parser.add_argument("--private", action="store_true", help="Include a swarm key")

        apply_parser = subparsers.add_parser("apply", help="Create or patch manifests")
        apply_parser.add_argument("path", help="Path to a YAML manifest")
        apply_parser.add_argument("--namespace", default=None, help="Namespace for namespaced objects without one")
        apply_parser.add_argument("--kubeconfig", default=None, help="Path to a kubeconfig file")
        apply_parser.add_argument("--context", default=None, help="Kubeconfig context")
        apply_parser.add_argument("--workers", type=int, default=1, help="Parallel apply workers")
        apply_parser.add_argument("--dry-run", action="store_true", help="Apply against an empty in-memory store")

    # --- commands -----------------------------------------------------------

    def cmd_resources(self, args: argparse.Namespace) -> int:
        storage_bytes = parse_storage_size(args.storage)
        profile = ipfs_container_resources(storage_bytes)
        if args.json:
            print(json.dumps(profile.to_resource_requirements(), indent=2))
        else:
            self.formatter.show_profile(storage_bytes, profile)
        return EXIT_OK

    def cmd_identity(self, args: argparse.Namespace) -> int:
        identity = self.provisioner.generate_identity()
        if args.json:
            print(json.dumps({"peerID": identity.peer_id, "privateKey": identity.private_key_string}, indent=2))
        else:
            self.formatter.show_identity(identity)
        return EXIT_OK

    def cmd_cluster_secret(self, args: argparse.Namespace) -> int:
        print(self.provisioner.new_cluster_secret())
        return EXIT_OK

    def cmd_swarm_key(self, args: argparse.Namespace) -> int:
        print(self.provisioner.new_swarm_key())
        return EXIT_OK

    def cmd_bundle(self, args: argparse.Namespace) -> int:
        data = build_cluster_secret_data(args.replicas, private=args.private, provisioner=self.provisioner)
        metadata = {"name": args.name}
        if args.namespace:
            metadata["namespace"] = args.namespace
        secret = {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": metadata,
            "type": "Opaque",
            "stringData": data,
        }
        yaml = YAML()
        yaml.indent(mapping=2, sequence=4, offset=2)
        yaml.dump(secret, sys.stdout)
        return EXIT_OK

    def cmd_apply(self, args: argparse.Namespace) -> int:
        tracked = ManifestLoader(default_namespace=args.namespace).load_file(args.path)
        logger.info(f"Loaded {len(tracked)} object(s) from {args.path}")
        if not tracked:
            console.print("[bold yellow]No objects found in manifest.[/bold yellow]")
            return EXIT_OK

        if args.dry_run:
            backend = InMemoryBackend()
        else:
            backend = KubernetesBackend.from_kubeconfig(args.kubeconfig, args.context)

        report = SyncEngine(backend, max_workers=args.workers).synchronize_report(tracked)
        self.formatter.show_sync_report(report)
        return EXIT_REQUEUE if report.requeue else EXIT_OK

    # --- routing ------------------------------------------------------------

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Primary routing entry point. Returns the process exit code."""
        args = self.parser.parse_args(argv)
        configure_logging(args.log_level)

        handlers = {
            "resources": self.cmd_resources,
            "identity": self.cmd_identity,
            "cluster-secret": self.cmd_cluster_secret,
            "swarm-key": self.cmd_swarm_key,
            "bundle": self.cmd_bundle,
            "apply": self.cmd_apply,
        }
        handler = handlers.get(args.command)
        if handler is None:
            self.parser.print_help()
            return EXIT_ERROR

        try:
            return handler(args)
        except (KubeSwarmError, ValueError) as e:
            console.print(Panel(f"[bold red]{e}[/bold red]", title="Error", border_style="red"))
            return EXIT_ERROR


def main():
    """Application entry point with interrupt handling."""
    try:
        sys.exit(KubeSwarmCLI().run())
    except KeyboardInterrupt:
        console.print("\n[bold red]Terminated by user.[/bold red]")
        sys.exit(1)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Deployment runner
Deploys and wires the topology described by the deployment request, then
keeps reconciling on a schedule until a run succeeds
"""

import time
import logging
from typing import Dict, Optional

import schedule

from .address_book import AddressBook
from .alerts import Notifier
from .chain import ArtifactStore, Chain
from .changeset import ChangesetOutput, deploy_and_configure
from .config import DeploymentRequest, ExecutionMode, Settings
from .errors import ConfigError, DeploymentError
from .proposal import TimelockProposer
from .router import new_router

logger = logging.getLogger(__name__)


def configure_logging(log_file: str = 'deployment.log'):
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )


class DeploymentRunner:
    def __init__(self, settings: Settings, request: DeploymentRequest,
                 chains: Optional[Dict[int, Chain]] = None, notifier: Optional[Notifier] = None):
        self.settings = settings
        self.request = request
        self.chains = chains if chains is not None else self._connect_chains()
        self.notifier = notifier or Notifier.from_settings(settings)

        self.successful_runs = 0
        self.failed_runs = 0
        self.last_output: Optional[ChangesetOutput] = None

    @classmethod
    def from_env(cls) -> "DeploymentRunner":
        settings = Settings.from_env()
        request = DeploymentRequest.load(settings.request_path)
        return cls(settings, request)

    def _connect_chains(self) -> Dict[int, Chain]:
        if not self.settings.private_key:
            raise ConfigError("PRIVATE_KEY not set")
        artifacts = ArtifactStore(self.settings.artifacts_dir)
        chains = {}
        for selector in self.request.all_chains:
            chains[selector] = Chain.from_rpc(
                selector,
                self.settings.rpc_url(selector),
                self.settings.private_key,
                artifacts,
                confirm_timeout=self.settings.confirm_timeout,
            )
        return chains

    def run_once(self) -> ChangesetOutput:
        """One full deploy-and-configure pass; the address book is saved even on failure"""
        address_book = AddressBook.from_file(self.settings.address_book_path)
        router = new_router(self.request.mode)
        proposer = None
        if self.request.mode == ExecutionMode.BATCHED:
            proposer = TimelockProposer(
                self.chains, address_book, self.request.min_delay, self.settings.proposals_dir
            )

        try:
            output = deploy_and_configure(self.request, self.chains, address_book, router, proposer)
        finally:
            address_book.to_file(self.settings.address_book_path)

        self.last_output = output
        if output.ok:
            self.successful_runs += 1
        else:
            self.failed_runs += 1
            self.notifier.send_alert(f"Deployment run failed: {output.error}", self._details(output))
        return output

    def _details(self, output: ChangesetOutput) -> Dict[str, str]:
        details = {
            "Chains": ", ".join(str(s) for s in self.request.all_chains),
            "Mode": self.request.mode.value,
            "Contracts Deployed": str(len(output.address_book)),
            "Successful Runs": str(self.successful_runs),
            "Failed Runs": str(self.failed_runs),
        }
        if output.deployment is not None:
            for selector, error in output.deployment.errors.items():
                details[f"Chain {selector}"] = str(error)
        return details

    def run_scheduled(self):
        """Scheduled job; cancels itself once a run succeeds"""
        logger.info("Starting scheduled reconcile...")
        output = self.run_once()
        if output.ok:
            logger.info("Reconcile converged, stopping schedule")
            return schedule.CancelJob
        logger.info(f"Reconcile incomplete, retrying in {self.settings.reconcile_interval_minutes} minutes")
        return None


def main():
    configure_logging()
    try:
        runner = DeploymentRunner.from_env()

        logger.info("Running initial deployment...")
        output = runner.run_once()
        interval = runner.settings.reconcile_interval_minutes
        if output.ok or interval <= 0:
            return 0 if output.ok else 1

        schedule.every(interval).minutes.do(runner.run_scheduled)
        logger.info(f"Starting reconcile loop (every {interval} minutes)...")
        while schedule.get_jobs():
            schedule.run_pending()
            time.sleep(1)
        return 0

    except KeyboardInterrupt:
        logger.info("Runner stopped by user")
        return 1
    except DeploymentError as e:
        logger.error(f"Fatal error: {e}")
        raise


if __name__ == "__main__":
    raise SystemExit(main())

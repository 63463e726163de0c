#!/usr/bin/env python3
# Copyright 2025 Canonical Ltd.
# See LICENSE file for licensing details.

"""Entry point of the Stash restore process, run as an init-container or a job."""

import logging
import sys

from kubernetes import client
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException
from pydantic import ValidationError
from urllib3.exceptions import HTTPError

from config import RestoreConfig
from k8s_utils import k8s_load_config
from stash import RestoreCoordinator, StashError

logger = logging.getLogger(__name__)


def main() -> None:
    """Restore the host of this replica and exit with the outcome."""
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    try:
        config = RestoreConfig.from_env()
    except ValidationError as ve:
        logger.critical(RestoreConfig.verror_to_str(ve))
        sys.exit(1)

    try:
        k8s_load_config()
    except ConfigException as ce:
        logger.critical("Failed to load the Kubernetes configuration: %s", ce)
        sys.exit(1)

    logger.info(
        "Starting restore for RestoreSession %s/%s (model: %s)",
        config.namespace,
        config.restore_session,
        config.restore_model.value,
    )
    coordinator = RestoreCoordinator.from_api_client(config, client.ApiClient())
    try:
        result = coordinator.run()
    except (StashError, ApiException, HTTPError) as e:
        logger.critical("failed to complete restore. Reason: %s", e)
        sys.exit(1)

    logger.info("Restore of host '%s' %s", result.hostname, result.status.value)
    sys.exit(0)


if __name__ == "__main__":  # pragma: nocover
    main()

# Copyright Vespa.ai. Licensed under the terms of the Apache 2.0 license. See LICENSE in the project root.

import logging
import sys
import threading
from enum import Enum
from pathlib import Path
from typing import IO, Any, Dict, List, Optional, Union

import docker
import requests
from requests.exceptions import ConnectionError

from vespakit.application import Vespa, response_body
from vespakit.exceptions import ContainerNotFoundError, TransportError, UpstreamError
from vespakit.package import ApplicationPackage
from vespakit.packager import zip_directory
from vespakit.utils.polling import DEFAULT_TRY_INTERVAL, poll_until

logger = logging.getLogger(__name__)

VESPA_CONTAINER_PORT = 8080
CONFIG_SERVER_CONTAINER_PORT = 19071


class DeploymentState(Enum):
    """Steps of a deployment, in the order they are reached. Any step can end in FAILED."""

    CONTAINER_ABSENT = "container-absent"
    CONTAINER_STARTING = "container-starting"
    CONTAINER_RUNNING = "container-running"
    CONFIG_SERVER_UNREADY = "config-server-unready"
    CONFIG_SERVER_READY = "config-server-ready"
    PACKAGE_UPLOADED = "package-uploaded"
    ACTIVATED = "activated"
    FAILED = "failed"


class VespaDocker(object):
    def __init__(
        self,
        port: int = 8080,
        container_memory: Union[str, int] = 4 * (1024**3),
        output_file: IO = sys.stdout,
        container: Optional[docker.models.containers.Container] = None,
        container_image: str = "vespaengine/vespa",
        cfgsrv_port: int = 19071,
        container_name: Optional[str] = None,
        client: Optional[docker.DockerClient] = None,
        url: str = "http://localhost",
    ) -> None:
        """
        Manage Docker deployments.

        Make sure to start the Docker daemon before deploying.

        Example usage::

            from vespakit.deployment import VespaDocker

            vespa_docker = VespaDocker(port=8080)
            app = vespa_docker.deploy(application_package=app_package)

        :param port: Container port. Default is 8080.
        :param container_memory: Docker container memory available to the application in bytes. Default is 4GB.
        :param output_file: Output file to write output messages.
        :param container: Used when instantiating VespaDocker from a running container.
        :param container_image: Docker container image.
        :param cfgsrv_port: Vespa Config Server port. Default is 19071.
        :param container_name: Name of the container. Defaults to the name of the deployed application.
        :param client: Docker client. Defaults to a client configured from the environment.
        :param url: URL the container ports are reachable on.
        """
        self.container = container
        self.container_name = container.name if container else container_name
        self.container_id = container.id if container else None
        self.url = url
        self.local_port = port
        self.cfgsrv_port = cfgsrv_port
        self.container_memory = container_memory
        self.output = output_file
        self.container_image = container_image
        self._client = client
        self.state = (
            DeploymentState.CONTAINER_ABSENT
            if container is None
            else DeploymentState.CONTAINER_RUNNING
        )
        self.history: List[DeploymentState] = [self.state]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, self.__class__):
            return NotImplemented
        return (
            self.container_id == other.container_id
            and self.container_name == other.container_name
            and self.url == other.url
            and self.local_port == other.local_port
            and self.container_memory == other.container_memory
            and self.container_image.split(":")[0]
            == other.container_image.split(":")[0]
        )

    def __repr__(self) -> str:
        return "{0}({1}, {2}, {3}, {4}, {5}, {6})".format(
            self.__class__.__name__,
            repr(self.url),
            repr(self.local_port),
            repr(self.container_name),
            repr(self.container_id),
            repr(self.container_memory),
            repr(self.container_image.split(":")[0]),
        )

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    @property
    def config_server_end_point(self) -> str:
        return "{}:{}".format(self.url.rstrip("/"), self.cfgsrv_port)

    def _transition(self, state: DeploymentState) -> None:
        logger.debug("Deployment state %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    @staticmethod
    def from_container_name_or_id(
        name_or_id: str,
        output_file: IO = sys.stdout,
        client: Optional[docker.DockerClient] = None,
    ) -> "VespaDocker":
        """
        Instantiate VespaDocker from a running container.

        :param name_or_id: Name or id of the container.
        :param output_file: Output file to write output messages.
        :param client: Docker client. Defaults to a client configured from the environment.
        :raises ContainerNotFoundError: The container does not exist.
        :return: VespaDocker instance associated with the running container.
        """
        client = client or docker.from_env()
        try:
            container = client.containers.get(name_or_id)
        except docker.errors.NotFound:
            raise ContainerNotFoundError(
                "The container {} does not exist.".format(name_or_id)
            ) from None
        host_config = container.attrs["HostConfig"]
        port_bindings = host_config["PortBindings"]
        port = int(port_bindings["{}/tcp".format(VESPA_CONTAINER_PORT)][0]["HostPort"])
        cfgsrv_bindings = port_bindings.get("{}/tcp".format(CONFIG_SERVER_CONTAINER_PORT))
        cfgsrv_port = (
            int(cfgsrv_bindings[0]["HostPort"])
            if cfgsrv_bindings
            else CONFIG_SERVER_CONTAINER_PORT
        )
        container_image = container.image.tags[0]  # vespaengine/vespa:latest
        container_image_split = container_image.split("/")
        if len(container_image_split) > 2:
            # Drop the registry, e.g. docker.io/vespaengine/vespa:latest
            container_image = "/".join(container_image_split[-2:])
        return VespaDocker(
            port=port,
            container_memory=host_config["Memory"],
            output_file=output_file,
            container=container,
            container_image=container_image,
            cfgsrv_port=cfgsrv_port,
            client=client,
        )

    def deploy(
        self,
        application_package: ApplicationPackage,
        max_wait_configserver: int = 60,
        max_wait_deployment: Optional[int] = None,
        try_interval: int = DEFAULT_TRY_INTERVAL,
        cancel_event: Optional[threading.Event] = None,
    ) -> Vespa:
        """
        Deploy the application package into a Vespa container.

        The container is adopted when one with the same name exists and created otherwise. Once the
        config server answers, the zipped package is uploaded to be prepared and activated.

        :param application_package: ApplicationPackage to be deployed.
        :param max_wait_configserver: Seconds to wait for the config server to start.
        :param max_wait_deployment: When set, seconds to wait for the application to answer on its query
            port after activation. A timeout here is raised but leaves the state at ACTIVATED.
        :param try_interval: Seconds between two readiness checks.
        :param cancel_event: Setting the event aborts the waits with DeploymentCancelledError.
        :raises DeploymentTimeoutError: A wait exceeded its maximum.
        :raises UpstreamError: The config server rejected the package.
        :raises TransportError: The config server could not be reached.
        :return: a Vespa connection instance.
        """
        return self._deploy_data(
            application_package,
            application_package.to_zip().getvalue(),
            max_wait_configserver=max_wait_configserver,
            max_wait_application=max_wait_deployment,
            try_interval=try_interval,
            cancel_event=cancel_event,
        )

    def deploy_from_disk(
        self,
        application_name: str,
        application_root: Union[str, Path],
        max_wait_configserver: int = 60,
        max_wait_application: Optional[int] = None,
        try_interval: int = DEFAULT_TRY_INTERVAL,
        cancel_event: Optional[threading.Event] = None,
    ) -> Vespa:
        """
        Deploy from a directory tree.

        Used when making changes to application package files not supported by the model,
        this is why this method is not found in the ApplicationPackage class.

        :param application_name: Application package name.
        :param application_root: Application package directory root.
        :param max_wait_application: When set, seconds to wait for the application to answer after activation.
        :return: a Vespa connection instance.
        """
        data = zip_directory(application_root).getvalue()
        return self._deploy_data(
            ApplicationPackage(name=application_name),
            data,
            max_wait_configserver=max_wait_configserver,
            max_wait_application=max_wait_application,
            try_interval=try_interval,
            cancel_event=cancel_event,
        )

    def wait_for_config_server_start(
        self,
        max_wait: int = 300,
        try_interval: int = DEFAULT_TRY_INTERVAL,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """
        Waits for Config Server to start inside the Docker image.

        :param max_wait: Seconds to wait for the config server.
        :param try_interval: Seconds between two checks.
        :param cancel_event: Setting the event aborts the wait.
        :raises DeploymentTimeoutError: The config server did not start within max_wait.
        :return: Seconds waited.
        """
        self._transition(DeploymentState.CONFIG_SERVER_UNREADY)
        waited = poll_until(
            self._check_configuration_server,
            max_wait=max_wait,
            try_interval=try_interval,
            description="configuration server",
            output_file=self.output,
            cancel_event=cancel_event,
        )
        self._transition(DeploymentState.CONFIG_SERVER_READY)
        return waited

    def stop_services(self) -> None:
        """
        Stop the Vespa container.

        :raises RuntimeError: if a container has not been set
        """
        if self.container is None:
            raise RuntimeError("No container found")
        print("Stopping container {}".format(self.container_name), file=self.output)
        self.container.stop()
        self._transition(DeploymentState.CONTAINER_ABSENT)

    def container_info(self) -> Dict[str, Any]:
        """
        Inspect the Vespa container.

        :raises RuntimeError: if a container has not been set
        :return: Host port, memory limit, internal IP address, id and name of the container.
        """
        if self.container is None:
            raise RuntimeError("No container found")
        self.container.reload()
        attrs = self.container.attrs
        port_bindings = attrs["HostConfig"]["PortBindings"]
        return {
            "port": int(
                port_bindings["{}/tcp".format(VESPA_CONTAINER_PORT)][0]["HostPort"]
            ),
            "memory": attrs["HostConfig"]["Memory"],
            "ip_address": attrs["NetworkSettings"]["IPAddress"],
            "id": self.container.id,
            "name": self.container.name,
        }

    def _deploy_data(
        self,
        application: ApplicationPackage,
        data: bytes,
        max_wait_configserver: int,
        max_wait_application: Optional[int],
        try_interval: int,
        cancel_event: Optional[threading.Event],
    ) -> Vespa:
        """
        Deploys an Application Package as zipped data.

        :param application: Application package.
        :param data: The zipped application package.
        :raises VespaError: Deployment failed. The state is FAILED when this is raised before
            activation, and stays ACTIVATED when only the optional application wait fails.
        :return: A Vespa connection instance.
        """
        try:
            self._run_vespa_engine_container(application_name=application.name)
            self.wait_for_config_server_start(
                max_wait=max_wait_configserver,
                try_interval=try_interval,
                cancel_event=cancel_event,
            )
            self._upload(data)
        except Exception:
            self._transition(DeploymentState.FAILED)
            raise
        self._transition(DeploymentState.ACTIVATED)
        print("Finished deployment.", file=self.output)

        app = Vespa(
            url=self.url,
            port=self.local_port,
            output_file=self.output,
            application_package=application,
        )
        if max_wait_application is not None:
            app.wait_for_application_up(
                max_wait=max_wait_application,
                try_interval=try_interval,
                cancel_event=cancel_event,
            )
        return app

    def _upload(self, data: bytes) -> None:
        end_point = "{}/application/v2/tenant/default/prepareandactivate".format(
            self.config_server_end_point
        )
        try:
            r = requests.post(
                end_point,
                headers={"Content-Type": "application/zip"},
                data=data,
                verify=False,
            )
        except ConnectionError as e:
            logger.error("Could not reach the config server at %s", end_point)
            raise TransportError(end_point, e) from e
        logger.debug("Deploy status code: %s", r.status_code)
        if r.status_code != 200:
            body = response_body(r)
            logger.error("Deployment failed, code: %s, message: %s", r.status_code, body)
            raise UpstreamError(r.status_code, end_point, body)
        self._transition(DeploymentState.PACKAGE_UPLOADED)

    def _run_vespa_engine_container(self, application_name: str) -> None:
        """Adopt the container named after the application, or create and start it."""
        name = self.container_name or application_name
        if self.container is None:
            try:
                logger.debug("Looking up Docker container %s", name)
                self.container = self.client.containers.get(name)
            except docker.errors.NotFound:
                mapped_ports = {
                    VESPA_CONTAINER_PORT: self.local_port,
                    CONFIG_SERVER_CONTAINER_PORT: self.cfgsrv_port,
                }
                logger.debug(
                    "Start a Docker container: image: %s, mem_limit: %s, name: %s, ports: %s",
                    self.container_image,
                    self.container_memory,
                    name,
                    mapped_ports,
                )
                self._transition(DeploymentState.CONTAINER_STARTING)
                self.container = self.client.containers.run(
                    self.container_image,
                    detach=True,
                    mem_limit=self.container_memory,
                    name=name,
                    hostname=name,
                    privileged=True,
                    ports=mapped_ports,
                )
            self.container_name = self.container.name
            self.container_id = self.container.id

        self.container.reload()
        if self.container.status != "running":
            logger.debug("Starting Docker container %s", self.container_name)
            self._transition(DeploymentState.CONTAINER_STARTING)
            self.container.start()
        self._transition(DeploymentState.CONTAINER_RUNNING)

    def _check_configuration_server(self) -> bool:
        """
        Check if configuration server is running and ready for deployment.

        :return: True if configuration server is running.
        """
        end_point = "{}/ApplicationStatus".format(self.config_server_end_point)
        try:
            response = requests.get(end_point)
        except ConnectionError:
            logger.debug("Config server not reachable at %s", end_point)
            return False
        logger.debug("Config Server ApplicationStatus response: %s", response.status_code)
        return response.status_code == 200

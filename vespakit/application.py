# Copyright Vespa.ai. Licensed under the terms of the Apache 2.0 license. See LICENSE in the project root.

import logging
import sys
import threading
from typing import IO, Any, Dict, List, Optional

import requests
from requests import Session
from requests.adapters import HTTPAdapter
from requests.exceptions import ConnectionError
from requests.models import Response

from vespakit.exceptions import InvalidArgumentError, TransportError, UpstreamError
from vespakit.io import VespaQueryResponse, VespaResponse
from vespakit.package import ApplicationPackage
from vespakit.utils.polling import DEFAULT_TRY_INTERVAL, poll_until

logger = logging.getLogger(__name__)


def response_body(response: Response) -> Any:
    """Decoded JSON body of `response`, or its text when the body is not JSON."""
    try:
        return response.json()
    except ValueError:
        return response.text


def raise_for_status(response: Response) -> None:
    """
    Raise UpstreamError when the response does not have a 2xx status code.

    :param response: Response from Vespa.
    :raises UpstreamError: With the status code, the URL and the response body.
    """
    if 200 <= response.status_code < 300:
        return
    body = response_body(response)
    logger.error(
        "Request to %s failed with status %s", response.url, response.status_code
    )
    raise UpstreamError(response.status_code, str(response.url), body)


class Vespa(object):
    def __init__(
        self,
        url: str,
        port: Optional[int] = None,
        cert: Optional[str] = None,
        key: Optional[str] = None,
        output_file: IO = sys.stdout,
        application_package: Optional[ApplicationPackage] = None,
    ) -> None:
        """
        Establish a connection with an existing Vespa application.

        :param url: Vespa instance URL.
        :param port: Vespa instance port.
        :param cert: Path to certificate and key file in case the 'key' parameter is none. If 'key' is not None, this
            should be the path of the certificate file.
        :param key: Path to the key file.
        :param output_file: Output file to write output messages.
        :param application_package: Application package definition used to deploy the application.

        >>> Vespa(url = "http://localhost", port = 8080)
        Vespa(http://localhost, 8080)
        """
        self.output_file = output_file
        self.url = url
        self.port = port
        self.cert = cert
        self.key = key
        self._application_package = application_package

        if port is None:
            self.end_point = str(url).rstrip("/")
        else:
            self.end_point = str(url).rstrip("/") + ":" + str(port)
        self.search_end_point = self.end_point + "/search/"

    def http(self, pool_maxsize: int = 10) -> "VespaSync":
        """Synchronous client for this application, to be used as a context manager."""
        return VespaSync(app=self, pool_maxsize=pool_maxsize)

    def __repr__(self):
        if self.port:
            return "Vespa({}, {})".format(self.url, self.port)
        else:
            return "Vespa({})".format(self.url)

    @property
    def application_package(self) -> Optional[ApplicationPackage]:
        return self._application_package

    def _infer_schema_name(self) -> str:
        if not self._application_package:
            raise InvalidArgumentError(
                "Application Package not available. Not possible to infer schema name."
            )
        return self._application_package.get_schema().name

    def get_application_status(self) -> Optional[Response]:
        """
        Get application status.

        :return: The response of the status endpoint, or None when the application can not be reached.
        """
        endpoint = "{}/ApplicationStatus".format(self.end_point)
        try:
            if self.key:
                response = requests.get(endpoint, cert=(self.cert, self.key))
            else:
                response = requests.get(endpoint, cert=self.cert)
        except ConnectionError:
            logger.debug("Application status endpoint %s not reachable", endpoint)
            response = None
        return response

    def wait_for_application_up(
        self,
        max_wait: int,
        try_interval: int = DEFAULT_TRY_INTERVAL,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """
        Wait for application ready.

        :param max_wait: Seconds to wait for the application endpoint.
        :param try_interval: Seconds between two status checks.
        :param cancel_event: Setting the event aborts the wait.
        :return: Seconds waited.
        :raises DeploymentTimeoutError: The application was not up within `max_wait` seconds.
        """

        def application_up() -> bool:
            response = self.get_application_status()
            return response is not None and response.status_code == 200

        return poll_until(
            application_up,
            max_wait=max_wait,
            try_interval=try_interval,
            description="application status",
            output_file=self.output_file,
            cancel_event=cancel_event,
        )

    def get_model_endpoint(self, model_id: Optional[str] = None) -> Any:
        """Get model evaluation endpoints."""
        with self.http() as sync_app:
            return sync_app.get_model_endpoint(model_id=model_id)

    def query(self, body: Optional[Dict] = None) -> VespaQueryResponse:
        """
        Send a query request to the Vespa application.

        Send 'body' containing all the request parameters.

        :param body: Dict containing all the request parameters.
        :return: The response from the Vespa application.
        """
        with self.http() as sync_app:
            return sync_app.query(body=body)

    def query_batch(self, body_batch: List[Dict]) -> List[VespaQueryResponse]:
        """
        Send queries in batch to a Vespa app.

        Queries are sent one after the other over a single session. The responses are in the order of
        `body_batch` and the first failing query stops the batch by raising its error.

        :param body_batch: A list of dict containing all the request parameters.
        :return: List of query responses.
        """
        with self.http() as sync_app:
            return [sync_app.query(body=body) for body in body_batch]

    def feed_data_point(
        self,
        data_id: str,
        fields: Dict,
        schema: Optional[str] = None,
        namespace: Optional[str] = None,
    ) -> VespaResponse:
        """
        Feed a data point to a Vespa app.

        :param data_id: Unique id associated with this data point.
        :param fields: Dict containing all the fields required by the `schema`.
        :param schema: The schema that we are sending data to. Inferred from the application package when omitted.
        :param namespace: The namespace that we are sending data to. If no namespace is provided the schema is used.
        :return: Response of the HTTP POST request.
        """
        if not schema:
            schema = self._infer_schema_name()
        with self.http() as sync_app:
            return sync_app.feed_data_point(
                schema=schema, data_id=data_id, fields=fields, namespace=namespace
            )

    def get_data(
        self, data_id: str, schema: Optional[str] = None, namespace: Optional[str] = None
    ) -> VespaResponse:
        """
        Get a data point from a Vespa app.

        :param data_id: Unique id associated with this data point.
        :param schema: The schema that we are getting data from. Inferred from the application package when omitted.
        :param namespace: The namespace that we are getting data from.
        :return: Response of the HTTP GET request.
        """
        if not schema:
            schema = self._infer_schema_name()
        with self.http() as sync_app:
            return sync_app.get_data(schema=schema, data_id=data_id, namespace=namespace)

    def update_data(
        self,
        data_id: str,
        fields: Dict,
        schema: Optional[str] = None,
        create: bool = False,
        namespace: Optional[str] = None,
    ) -> VespaResponse:
        """
        Update a data point in a Vespa app.

        :param data_id: Unique id associated with this data point.
        :param fields: Dict containing all the fields you want to update.
        :param schema: The schema that we are updating data. Inferred from the application package when omitted.
        :param create: If true, updates to non-existent documents will create an empty document to update.
        :param namespace: The namespace that we are updating data.
        :return: Response of the HTTP PUT request.
        """
        if not schema:
            schema = self._infer_schema_name()
        with self.http() as sync_app:
            return sync_app.update_data(
                schema=schema,
                data_id=data_id,
                fields=fields,
                create=create,
                namespace=namespace,
            )

    def delete_data(
        self, data_id: str, schema: Optional[str] = None, namespace: Optional[str] = None
    ) -> VespaResponse:
        """
        Delete a data point from a Vespa app.

        :param data_id: Unique id associated with this data point.
        :param schema: The schema that we are deleting data from. Inferred from the application package when omitted.
        :param namespace: The namespace that we are deleting data from.
        :return: Response of the HTTP DELETE request.
        """
        if not schema:
            schema = self._infer_schema_name()
        with self.http() as sync_app:
            return sync_app.delete_data(
                schema=schema, data_id=data_id, namespace=namespace
            )

    def delete_all_docs(
        self,
        content_cluster_name: str,
        schema: Optional[str] = None,
        namespace: Optional[str] = None,
    ) -> VespaResponse:
        """
        Delete all documents associated with the schema.

        :param content_cluster_name: Name of content cluster to GET from, or visit.
        :param schema: The schema that we are deleting data from. Inferred from the application package when omitted.
        :param namespace: The namespace that we are deleting data from.
        :return: Response of the HTTP DELETE request.
        """
        if not schema:
            schema = self._infer_schema_name()
        with self.http() as sync_app:
            return sync_app.delete_all_docs(
                content_cluster_name=content_cluster_name,
                schema=schema,
                namespace=namespace,
            )


class VespaSync(object):
    def __init__(self, app: Vespa, pool_maxsize: int = 10) -> None:
        self.app = app
        if self.app.key:
            self.cert = (self.app.cert, self.app.key)
        else:
            self.cert = self.app.cert
        self.http_session = None
        self.adapter = HTTPAdapter(pool_maxsize=pool_maxsize)

    def __enter__(self):
        self._open_http_session()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._close_http_session()

    def _open_http_session(self):
        if self.http_session is not None:
            return

        self.http_session = Session()
        self.http_session.mount("https://", self.adapter)
        self.http_session.mount("http://", self.adapter)
        return self.http_session

    def _close_http_session(self):
        if self.http_session is None:
            return
        self.http_session.close()
        self.http_session = None

    def _request(self, method: str, end_point: str, **kwargs) -> Response:
        try:
            response = self.http_session.request(
                method, end_point, cert=self.cert, **kwargs
            )
        except ConnectionError as e:
            logger.error("Could not connect to %s", end_point)
            raise TransportError(end_point, e) from e
        logger.debug("%s %s returned %s", method, end_point, response.status_code)
        raise_for_status(response)
        return response

    def _document_end_point(self, schema: str, data_id: str, namespace: Optional[str]) -> str:
        if not namespace:
            namespace = schema
        return "{}/document/v1/{}/{}/docid/{}".format(
            self.app.end_point, namespace, schema, str(data_id)
        )

    def get_model_endpoint(self, model_id: Optional[str] = None) -> Any:
        """Get model evaluation endpoints."""
        end_point = "{}/model-evaluation/v1/".format(self.app.end_point)
        if model_id:
            end_point = end_point + model_id
        return response_body(self._request("GET", end_point))

    def feed_data_point(
        self, schema: str, data_id: str, fields: Dict, namespace: Optional[str] = None
    ) -> VespaResponse:
        """
        Feed a data point to a Vespa app.

        :param schema: The schema that we are sending data to.
        :param data_id: Unique id associated with this data point.
        :param fields: Dict containing all the fields required by the `schema`.
        :param namespace: The namespace that we are sending data to. If no namespace is provided the schema is used.
        :return: Response of the HTTP POST request.
        """
        end_point = self._document_end_point(schema, data_id, namespace)
        vespa_format = {"fields": fields}
        response = self._request("POST", end_point, json=vespa_format)
        return VespaResponse(
            json=response_body(response),
            status_code=response.status_code,
            url=str(response.url),
            operation_type="feed",
        )

    def query(self, body: Optional[Dict] = None) -> VespaQueryResponse:
        """
        Send a query request to the Vespa application.

        :param body: Dict containing all the request parameters.
        :return: The result from the Vespa application.
        """
        r = self._request("POST", self.app.search_end_point, json=body)
        return VespaQueryResponse(
            json=response_body(r),
            status_code=r.status_code,
            url=str(r.url),
            request_body=body,
        )

    def delete_data(
        self, schema: str, data_id: str, namespace: Optional[str] = None
    ) -> VespaResponse:
        end_point = self._document_end_point(schema, data_id, namespace)
        response = self._request("DELETE", end_point)
        return VespaResponse(
            json=response_body(response),
            status_code=response.status_code,
            url=str(response.url),
            operation_type="delete",
        )

    def delete_all_docs(
        self, content_cluster_name: str, schema: str, namespace: Optional[str] = None
    ) -> VespaResponse:
        """
        Delete all documents associated with the schema.

        :param content_cluster_name: Name of content cluster to GET from, or visit.
        :param schema: The schema that we are deleting data from.
        :param namespace: The namespace that we are deleting data from.
        :return: Response of the HTTP DELETE request.
        """
        if not namespace:
            namespace = schema

        end_point = "{}/document/v1/{}/{}/docid/?cluster={}&selection=true".format(
            self.app.end_point, namespace, schema, content_cluster_name
        )
        response = self._request("DELETE", end_point)
        return VespaResponse(
            json=response_body(response),
            status_code=response.status_code,
            url=str(response.url),
            operation_type="delete_all",
        )

    def get_data(
        self, schema: str, data_id: str, namespace: Optional[str] = None
    ) -> VespaResponse:
        end_point = self._document_end_point(schema, data_id, namespace)
        response = self._request("GET", end_point)
        return VespaResponse(
            json=response_body(response),
            status_code=response.status_code,
            url=str(response.url),
            operation_type="get",
        )

    def update_data(
        self,
        schema: str,
        data_id: str,
        fields: Dict,
        create: bool = False,
        namespace: Optional[str] = None,
    ) -> VespaResponse:
        """
        Update a data point in a Vespa app.

        Every field is updated with an `assign` operation.

        :param schema: The schema that we are updating data.
        :param data_id: Unique id associated with this data point.
        :param fields: Dict containing all the fields you want to update.
        :param create: If true, updates to non-existent documents will create an empty document to update.
        :param namespace: The namespace that we are updating data.
        :return: Response of the HTTP PUT request.
        """
        end_point = "{}?create={}".format(
            self._document_end_point(schema, data_id, namespace), str(create).lower()
        )
        vespa_format = {"fields": {k: {"assign": v} for k, v in fields.items()}}
        response = self._request("PUT", end_point, json=vespa_format)
        return VespaResponse(
            json=response_body(response),
            status_code=response.status_code,
            url=str(response.url),
            operation_type="update",
        )

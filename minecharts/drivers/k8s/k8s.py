"""Kubernetes driver implementation using kubernetes-asyncio.

One game server maps to:
    Deployment   <prefix><server>         (1 replica, Recreate strategy)
    PVC          <prefix><server>-pvc     (ReadWriteOnce, mounted at /data)
    Service      <prefix><server>-svc     (optional, created on expose)

Scale and restart use read-modify-replace so the resourceVersion check
gives optimistic concurrency; conflicts surface as DriverError(409).
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager

import aiohttp
import structlog
from kubernetes_asyncio import client, config
from kubernetes_asyncio.client import ApiClient, ApiException
from kubernetes_asyncio.stream import WsApiClient

from minecharts.config import KubernetesConfig, get_settings
from minecharts.drivers.base import (
    Driver,
    DriverError,
    ExecFrame,
    ServiceInfo,
    ServiceSpec,
    WorkloadInfo,
    WorkloadSpec,
)

logger = structlog.get_logger()

RESTARTED_AT_ANNOTATION = "kubectl.kubernetes.io/restartedAt"

# Flush the world and stop cleanly before the pod is killed
PRE_STOP_COMMAND = ["/bin/sh", "-c", "mc-send-to-console save-all stop && sleep 5"]


def _parse_storage_size(size_str: str) -> str:
    """Normalize storage size string for K8s (e.g., '10g' -> '10Gi')."""
    size_str = size_str.strip()
    if size_str.endswith(("Ki", "Mi", "Gi", "Ti")):
        return size_str
    if size_str.lower().endswith("t"):
        return f"{size_str[:-1]}Ti"
    if size_str.lower().endswith("g"):
        return f"{size_str[:-1]}Gi"
    if size_str.lower().endswith("m"):
        return f"{size_str[:-1]}Mi"
    if size_str.lower().endswith("k"):
        return f"{size_str[:-1]}Ki"
    return size_str


def _label_selector(labels: dict[str, str]) -> str:
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))


def _driver_error(operation: str, e: ApiException) -> DriverError:
    # Only status and reason; the body may echo request content
    return DriverError(operation, status=e.status, reason=e.reason or "")


class K8sDriver(Driver):
    """Kubernetes driver: Deployments, PVCs, Services, pod exec."""

    def __init__(self, k8s_config: KubernetesConfig | None = None) -> None:
        cfg = k8s_config or get_settings().kubernetes

        self._namespace = cfg.namespace
        self._kubeconfig = cfg.kubeconfig
        self._storage_class = cfg.storage_class
        self._storage_size = cfg.storage_size
        self._image = cfg.image
        self._container_name = cfg.container_name
        self._game_port = cfg.game_port
        self._data_path = cfg.data_path

        self._log = logger.bind(driver="k8s", namespace=self._namespace)
        self._api_client: ApiClient | None = None
        self._config_loaded = False

    async def _ensure_config(self) -> None:
        """Load Kubernetes configuration once."""
        if self._config_loaded:
            return

        if self._kubeconfig:
            await config.load_kube_config(config_file=self._kubeconfig)
            self._log.info("k8s.config.loaded", source="kubeconfig", path=self._kubeconfig)
        else:
            config.load_incluster_config()
            self._log.info("k8s.config.loaded", source="incluster")

        self._config_loaded = True

    async def _get_api_client(self) -> ApiClient:
        await self._ensure_config()
        if self._api_client is None:
            self._api_client = ApiClient()
        return self._api_client

    async def _core(self) -> client.CoreV1Api:
        return client.CoreV1Api(await self._get_api_client())

    async def _apps(self) -> client.AppsV1Api:
        return client.AppsV1Api(await self._get_api_client())

    async def close(self) -> None:
        if self._api_client is not None:
            await self._api_client.close()
            self._api_client = None

    # Volume claims

    async def create_volume_claim(self, name: str, labels: dict[str, str]) -> bool:
        if await self.volume_claim_exists(name):
            self._log.debug("k8s.create_volume_claim.exists", name=name)
            return False

        v1 = await self._core()
        storage_size = _parse_storage_size(self._storage_size)
        pvc = client.V1PersistentVolumeClaim(
            metadata=client.V1ObjectMeta(name=name, namespace=self._namespace, labels=labels),
            spec=client.V1PersistentVolumeClaimSpec(
                access_modes=["ReadWriteOnce"],
                resources=client.V1VolumeResourceRequirements(
                    requests={"storage": storage_size},
                ),
                storage_class_name=self._storage_class,
            ),
        )

        self._log.info(
            "k8s.create_volume_claim",
            name=name,
            storage_size=storage_size,
            storage_class=self._storage_class,
        )
        try:
            await v1.create_namespaced_persistent_volume_claim(
                namespace=self._namespace,
                body=pvc,
            )
        except ApiException as e:
            if e.status == 409:
                # Lost the race to a concurrent create
                self._log.warning("k8s.create_volume_claim.already_exists", name=name)
                return False
            raise _driver_error("create_volume_claim", e) from e
        return True

    async def volume_claim_exists(self, name: str) -> bool:
        v1 = await self._core()
        try:
            await v1.read_namespaced_persistent_volume_claim(
                name=name,
                namespace=self._namespace,
            )
            return True
        except ApiException as e:
            if e.status == 404:
                return False
            raise _driver_error("read_volume_claim", e) from e

    async def delete_volume_claim(self, name: str) -> bool:
        v1 = await self._core()
        self._log.info("k8s.delete_volume_claim", name=name)
        try:
            await v1.delete_namespaced_persistent_volume_claim(
                name=name,
                namespace=self._namespace,
            )
        except ApiException as e:
            if e.status == 404:
                self._log.warning("k8s.delete_volume_claim.not_found", name=name)
                return False
            raise _driver_error("delete_volume_claim", e) from e
        return True

    # Workloads

    def _build_deployment(self, spec: WorkloadSpec) -> client.V1Deployment:
        env = [client.V1EnvVar(name=k, value=v) for k, v in spec.env.items()]

        container = client.V1Container(
            name=self._container_name,
            image=self._image,
            ports=[
                client.V1ContainerPort(
                    name="minecraft",
                    container_port=self._game_port,
                    protocol="TCP",
                )
            ],
            env=env,
            volume_mounts=[
                client.V1VolumeMount(name="minecraft-storage", mount_path=self._data_path)
            ],
            lifecycle=client.V1Lifecycle(
                pre_stop=client.V1LifecycleHandler(
                    _exec=client.V1ExecAction(command=PRE_STOP_COMMAND),
                ),
            ),
        )

        return client.V1Deployment(
            metadata=client.V1ObjectMeta(
                name=spec.name,
                namespace=self._namespace,
                labels=spec.labels,
            ),
            spec=client.V1DeploymentSpec(
                replicas=spec.replicas,
                # Two pods must never mount the same RWO world at once
                strategy=client.V1DeploymentStrategy(type="Recreate"),
                selector=client.V1LabelSelector(match_labels={"app": spec.name}),
                template=client.V1PodTemplateSpec(
                    metadata=client.V1ObjectMeta(labels=spec.labels),
                    spec=client.V1PodSpec(
                        containers=[container],
                        volumes=[
                            client.V1Volume(
                                name="minecraft-storage",
                                persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(
                                    claim_name=spec.volume_claim_name,
                                ),
                            )
                        ],
                    ),
                ),
            ),
        )

    async def create_workload(self, spec: WorkloadSpec) -> bool:
        apps = await self._apps()
        self._log.info(
            "k8s.create_workload",
            name=spec.name,
            image=self._image,
            volume_claim=spec.volume_claim_name,
        )
        try:
            await apps.create_namespaced_deployment(
                namespace=self._namespace,
                body=self._build_deployment(spec),
            )
        except ApiException as e:
            if e.status == 409:
                self._log.warning("k8s.create_workload.already_exists", name=spec.name)
                return False
            raise _driver_error("create_workload", e) from e
        return True

    async def _read_deployment(self, name: str, operation: str) -> client.V1Deployment | None:
        apps = await self._apps()
        try:
            return await apps.read_namespaced_deployment(name=name, namespace=self._namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise _driver_error(operation, e) from e

    async def get_workload(self, name: str) -> WorkloadInfo | None:
        deployment = await self._read_deployment(name, "get_workload")
        if deployment is None:
            return None

        annotations = {}
        template_meta = deployment.spec.template.metadata
        if template_meta is not None and template_meta.annotations:
            annotations = template_meta.annotations

        ready = 0
        if deployment.status is not None and deployment.status.ready_replicas:
            ready = deployment.status.ready_replicas

        return WorkloadInfo(
            name=name,
            replicas=deployment.spec.replicas or 0,
            ready_replicas=ready,
            restarted_at=annotations.get(RESTARTED_AT_ANNOTATION),
        )

    async def delete_workload(self, name: str) -> bool:
        apps = await self._apps()
        self._log.info("k8s.delete_workload", name=name)
        try:
            await apps.delete_namespaced_deployment(name=name, namespace=self._namespace)
        except ApiException as e:
            if e.status == 404:
                self._log.warning("k8s.delete_workload.not_found", name=name)
                return False
            raise _driver_error("delete_workload", e) from e
        return True

    async def _replace_deployment(self, deployment: client.V1Deployment, operation: str) -> None:
        apps = await self._apps()
        try:
            await apps.replace_namespaced_deployment(
                name=deployment.metadata.name,
                namespace=self._namespace,
                body=deployment,
            )
        except ApiException as e:
            raise _driver_error(operation, e) from e

    async def scale_workload(self, name: str, replicas: int) -> None:
        deployment = await self._read_deployment(name, "scale_workload")
        if deployment is None:
            raise DriverError("scale_workload", status=404, reason="Not Found")

        self._log.info("k8s.scale_workload", name=name, replicas=replicas)
        deployment.spec.replicas = replicas
        await self._replace_deployment(deployment, "scale_workload")

    async def restart_workload(self, name: str, restarted_at: str) -> None:
        deployment = await self._read_deployment(name, "restart_workload")
        if deployment is None:
            raise DriverError("restart_workload", status=404, reason="Not Found")

        template_meta = deployment.spec.template.metadata
        if template_meta is None:
            template_meta = deployment.spec.template.metadata = client.V1ObjectMeta()
        if template_meta.annotations is None:
            template_meta.annotations = {}
        template_meta.annotations[RESTARTED_AT_ANNOTATION] = restarted_at

        self._log.info("k8s.restart_workload", name=name, restarted_at=restarted_at)
        await self._replace_deployment(deployment, "restart_workload")

    async def find_instance(self, workload_name: str) -> str | None:
        v1 = await self._core()
        try:
            pods = await v1.list_namespaced_pod(
                namespace=self._namespace,
                label_selector=_label_selector({"app": workload_name}),
            )
        except ApiException as e:
            raise _driver_error("find_instance", e) from e

        for pod in pods.items:
            if pod.metadata.deletion_timestamp is not None:
                continue
            if pod.status is not None and pod.status.phase == "Running":
                return pod.metadata.name
        return None

    # Services

    async def create_service(self, spec: ServiceSpec) -> ServiceInfo:
        v1 = await self._core()
        service = client.V1Service(
            metadata=client.V1ObjectMeta(
                name=spec.name,
                namespace=self._namespace,
                labels=spec.labels,
                annotations=spec.annotations or None,
            ),
            spec=client.V1ServiceSpec(
                type=spec.service_type,
                selector=spec.selector,
                ports=[
                    client.V1ServicePort(
                        name="minecraft",
                        port=spec.port,
                        target_port=spec.target_port,
                        protocol="TCP",
                    )
                ],
            ),
        )

        self._log.info(
            "k8s.create_service",
            name=spec.name,
            service_type=spec.service_type,
            port=spec.port,
        )
        try:
            created = await v1.create_namespaced_service(namespace=self._namespace, body=service)
        except ApiException as e:
            raise _driver_error("create_service", e) from e

        return self._service_info(created)

    @staticmethod
    def _service_info(service: client.V1Service) -> ServiceInfo:
        node_port = None
        if service.spec.ports:
            node_port = service.spec.ports[0].node_port

        external = None
        lb = service.status.load_balancer if service.status is not None else None
        if lb is not None and lb.ingress:
            ingress = lb.ingress[0]
            external = ingress.ip or ingress.hostname

        return ServiceInfo(
            name=service.metadata.name,
            service_type=service.spec.type,
            node_port=node_port,
            external_address=external,
            annotations=dict(service.metadata.annotations or {}),
        )

    async def list_services(self, labels: dict[str, str]) -> list[str]:
        v1 = await self._core()
        try:
            services = await v1.list_namespaced_service(
                namespace=self._namespace,
                label_selector=_label_selector(labels),
            )
        except ApiException as e:
            raise _driver_error("list_services", e) from e
        return [svc.metadata.name for svc in services.items]

    async def delete_service(self, name: str) -> bool:
        v1 = await self._core()
        self._log.info("k8s.delete_service", name=name)
        try:
            await v1.delete_namespaced_service(name=name, namespace=self._namespace)
        except ApiException as e:
            if e.status == 404:
                return False
            raise _driver_error("delete_service", e) from e
        return True

    # Exec

    @asynccontextmanager
    async def exec_stream(
        self,
        instance: str,
        container: str,
        command: list[str],
    ) -> AsyncIterator[AsyncIterator[ExecFrame]]:
        await self._ensure_config()
        self._log.debug("k8s.exec.open", pod_name=instance, container=container)

        async with WsApiClient() as ws_api, AsyncExitStack() as stack:
            v1 = client.CoreV1Api(api_client=ws_api)
            try:
                # With _preload_content=False this is aiohttp's ws_connect
                # context manager; the handshake happens on enter
                pending = await v1.connect_get_namespaced_pod_exec(
                    name=instance,
                    namespace=self._namespace,
                    container=container,
                    command=command,
                    stderr=True,
                    stdin=False,
                    stdout=True,
                    tty=False,
                    _preload_content=False,
                )
                conn = await stack.enter_async_context(pending)
            except ApiException as e:
                raise _driver_error("exec", e) from e
            except aiohttp.ClientResponseError as e:
                raise DriverError("exec", status=e.status, reason=e.message) from e
            except aiohttp.ClientError as e:
                raise DriverError("exec", reason=type(e).__name__) from e

            yield self._frames(conn)

    @staticmethod
    async def _frames(conn: aiohttp.ClientWebSocketResponse) -> AsyncIterator[ExecFrame]:
        try:
            async for msg in conn:
                if msg.type == aiohttp.WSMsgType.ERROR:
                    raise DriverError("exec", reason="stream error")
                if msg.type != aiohttp.WSMsgType.BINARY or not msg.data:
                    continue
                yield msg.data[0], bytes(msg.data[1:])
        except aiohttp.ClientError as e:
            raise DriverError("exec", reason=type(e).__name__) from e

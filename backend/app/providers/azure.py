"""Azure Resource Manager client: resource inventory, Monitor metrics and Cost Management."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import structlog
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import ClientSecretCredential

logger = structlog.get_logger()

AZURE_MANAGEMENT_URL = "https://management.azure.com"
AZURE_MANAGEMENT_SCOPE = "https://management.azure.com/.default"

# A cached token is treated as expired this long before Azure says it is
TOKEN_REFRESH_SKEW = timedelta(seconds=60)

VIRTUAL_MACHINE_TYPE = "Microsoft.Compute/virtualMachines"
MANAGED_DISK_TYPE = "Microsoft.Compute/disks"
SQL_DATABASE_TYPE = "Microsoft.Sql/servers/databases"
APP_SERVICE_PLAN_TYPE = "Microsoft.Web/serverfarms"
STORAGE_ACCOUNT_TYPE = "Microsoft.Storage/storageAccounts"
PUBLIC_IP_TYPE = "Microsoft.Network/publicIPAddresses"
LOAD_BALANCER_TYPE = "Microsoft.Network/loadBalancers"

API_VERSIONS = {
    "subscriptions": "2020-01-01",
    "resource_graph": "2021-03-01",
    "disks": "2023-01-02",
    "network": "2023-09-01",
    "metrics": "2018-01-01",
    "cost": "2023-03-01",
}


class AzureAPIError(Exception):
    """Raised when an Azure call fails (as opposed to returning no data)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def transient(self) -> bool:
        """Network failures, throttling and server errors are worth retrying later."""
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500


@dataclass
class AzureSubscription:
    subscription_id: str
    display_name: str
    state: str | None = None


@dataclass
class AzureResource:
    id: str
    name: str
    type: str
    location: str | None
    resource_group: str | None
    subscription_id: str
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class AzureUnattachedDisk:
    id: str
    name: str
    location: str | None
    disk_size_gb: float | None = None
    sku: str | None = None
    time_created: str | None = None


@dataclass
class AzurePublicIp:
    id: str
    name: str
    location: str | None
    ip_address: str | None = None
    allocation_method: str | None = None
    idle_timeout_minutes: int | None = None


@dataclass
class AzureFrontendIpConfiguration:
    name: str | None = None
    private_ip_address: str | None = None
    public_ip_address_id: str | None = None


@dataclass
class AzureLoadBalancer:
    id: str
    name: str
    location: str | None
    sku: str | None = None
    frontend_ip_configurations: list[AzureFrontendIpConfiguration] = field(default_factory=list)


def _format_timespan(lookback_days: float, now: datetime | None = None) -> str:
    end = now or datetime.now(timezone.utc)
    start = end - timedelta(days=lookback_days)
    return f"{start.strftime('%Y-%m-%dT%H:%M:%SZ')}/{end.strftime('%Y-%m-%dT%H:%M:%SZ')}"


def _sum_cost_rows(payload: dict[str, Any], column_name: str = "Cost") -> float:
    properties = payload.get("properties") or {}
    columns = properties.get("columns") or []
    rows = properties.get("rows") or []

    index = next(
        (i for i, column in enumerate(columns) if column.get("name") == column_name),
        None,
    )
    if index is None:
        return 0.0

    total = 0.0
    for row in rows:
        try:
            total += float(row[index])
        except (TypeError, ValueError, IndexError):
            continue
    return total


class AzureClient:
    """
    Async client for one Azure subscription.

    Authentication uses a Service Principal (tenant_id, client_id, client_secret).
    The access token is cached on the instance only, so two organizations never
    share a token.
    """

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        subscription_id: str,
        credential: Any | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize Azure client.

        Args:
            tenant_id: Azure AD Tenant ID
            client_id: Service Principal Application/Client ID
            client_secret: Service Principal Client Secret
            subscription_id: Azure Subscription ID
            credential: Optional object with a get_token(scope) method (defaults to ClientSecretCredential)
            transport: Optional httpx transport (used by tests)
        """
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.subscription_id = subscription_id
        self.credential = credential or ClientSecretCredential(
            tenant_id=tenant_id,
            client_id=client_id,
            client_secret=client_secret,
        )
        self._transport = transport

        # Access token cache
        self._access_token: str | None = None
        self._token_expires_at: datetime | None = None

    @property
    def subscription_scope(self) -> str:
        return f"/subscriptions/{self.subscription_id}"

    async def _get_access_token(self) -> str:
        """
        Get an ARM access token, reusing the cached one until shortly before expiry.

        Raises:
            AzureAPIError: If token acquisition fails
        """
        if (
            self._access_token
            and self._token_expires_at
            and datetime.now(timezone.utc) < self._token_expires_at
        ):
            return self._access_token

        try:
            token = self.credential.get_token(AZURE_MANAGEMENT_SCOPE)
        except ClientAuthenticationError as e:
            raise AzureAPIError(f"Failed to acquire Azure access token: {e}", status_code=401) from e

        self._access_token = token.token
        self._token_expires_at = (
            datetime.fromtimestamp(token.expires_on, tz=timezone.utc) - TOKEN_REFRESH_SKEW
        )
        logger.debug(
            "azure.token.refreshed",
            subscription_id=self.subscription_id,
            expires_at=self._token_expires_at.isoformat(),
        )
        return self._access_token

    async def _request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Call the ARM API and return the decoded JSON body.

        Raises:
            AzureAPIError: On network failure or a non-2xx response
        """
        token = await self._get_access_token()
        if url.startswith("/"):
            url = f"{AZURE_MANAGEMENT_URL}{url}"

        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
                response = await client.request(
                    method, url, params=params, json=json_data, headers=headers
                )
        except httpx.HTTPError as e:
            raise AzureAPIError(f"Azure request {method} {url} failed: {e}") from e

        if response.is_error:
            raise AzureAPIError(
                f"Azure request {method} {url} failed: {response.status_code} {response.text[:500]}".strip(),
                status_code=response.status_code,
            )

        return response.json()

    async def _get_paged(self, url: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        """Follow nextLink until the listing is exhausted."""
        results: list[dict[str, Any]] = []
        next_link: str | None = url
        first = True

        while next_link:
            # nextLink already carries the api-version and skip token
            data = await self._request("GET", next_link, params=params if first else None)
            results.extend(data.get("value") or [])
            next_link = data.get("nextLink")
            first = False

        return results

    async def _query_resource_graph(self, query: str) -> list[dict[str, Any]]:
        """Run a Resource Graph query scoped to this subscription."""
        url = "/providers/Microsoft.ResourceGraph/resources"
        params = {"api-version": API_VERSIONS["resource_graph"]}
        body: dict[str, Any] = {
            "subscriptions": [self.subscription_id],
            "query": query,
            "options": {"resultFormat": "objectArray"},
        }

        rows: list[dict[str, Any]] = []
        while True:
            data = await self._request("POST", url, params=params, json_data=body)
            rows.extend(data.get("data") or [])
            skip_token = data.get("$skipToken")
            if not skip_token:
                return rows
            body["options"] = {"resultFormat": "objectArray", "$skipToken": skip_token}

    def _to_resource(self, item: dict[str, Any]) -> AzureResource:
        return AzureResource(
            id=item["id"],
            name=item.get("name") or item["id"].rsplit("/", 1)[-1],
            type=item.get("type") or "",
            location=item.get("location"),
            resource_group=item.get("resourceGroup"),
            subscription_id=item.get("subscriptionId") or self.subscription_id,
            tags=dict(item.get("tags") or {}),
        )

    async def list_subscriptions(self) -> list[AzureSubscription]:
        """List subscriptions visible to the service principal."""
        data = await self._request(
            "GET", "/subscriptions", params={"api-version": API_VERSIONS["subscriptions"]}
        )
        return [
            AzureSubscription(
                subscription_id=item["subscriptionId"],
                display_name=item.get("displayName") or item["subscriptionId"],
                state=item.get("state"),
            )
            for item in data.get("value") or []
        ]

    async def list_resources(self) -> list[AzureResource]:
        """List every resource in the subscription."""
        query = (
            f"Resources | where subscriptionId == '{self.subscription_id}' "
            "| project id, name, type, location, resourceGroup, subscriptionId, tags"
        )
        return [self._to_resource(item) for item in await self._query_resource_graph(query)]

    async def list_resources_of_type(self, resource_type: str) -> list[AzureResource]:
        """List resources of one ARM type (case-insensitive) in the subscription."""
        query = (
            f"Resources | where subscriptionId == '{self.subscription_id}' "
            f"| where type =~ '{resource_type}' "
            "| project id, name, type, location, resourceGroup, subscriptionId, tags"
        )
        return [self._to_resource(item) for item in await self._query_resource_graph(query)]

    async def list_unattached_disks(self) -> list[AzureUnattachedDisk]:
        """List managed disks that are not attached to any VM."""
        disks = await self._get_paged(
            f"{self.subscription_scope}/providers/Microsoft.Compute/disks",
            params={"api-version": API_VERSIONS["disks"]},
        )

        unattached = []
        for disk in disks:
            properties = disk.get("properties") or {}
            if properties.get("managedBy"):
                continue
            unattached.append(
                AzureUnattachedDisk(
                    id=disk["id"],
                    name=disk.get("name") or "",
                    location=disk.get("location"),
                    disk_size_gb=properties.get("diskSizeGB"),
                    sku=(disk.get("sku") or {}).get("name"),
                    time_created=properties.get("timeCreated"),
                )
            )
        return unattached

    async def list_unattached(self, kind: str) -> list[AzureUnattachedDisk]:
        """
        List detached resources of a given kind.

        Args:
            kind: Resource kind; only "disk" is supported

        Raises:
            ValueError: For unsupported kinds
        """
        if kind == "disk":
            return await self.list_unattached_disks()
        raise ValueError(f"Unsupported unattached resource kind: {kind}")

    async def list_public_ips(self) -> list[AzurePublicIp]:
        """List public IP addresses in the subscription."""
        addresses = await self._get_paged(
            f"{self.subscription_scope}/providers/Microsoft.Network/publicIPAddresses",
            params={"api-version": API_VERSIONS["network"]},
        )
        return [
            AzurePublicIp(
                id=address["id"],
                name=address.get("name") or "",
                location=address.get("location"),
                ip_address=(address.get("properties") or {}).get("ipAddress"),
                allocation_method=(address.get("properties") or {}).get("publicIPAllocationMethod"),
                idle_timeout_minutes=(address.get("properties") or {}).get("idleTimeoutInMinutes"),
            )
            for address in addresses
        ]

    async def list_load_balancers(self) -> list[AzureLoadBalancer]:
        """List load balancers with their frontend IP configurations."""
        balancers = await self._get_paged(
            f"{self.subscription_scope}/providers/Microsoft.Network/loadBalancers",
            params={"api-version": API_VERSIONS["network"]},
        )

        results = []
        for balancer in balancers:
            frontends = []
            for config in (balancer.get("properties") or {}).get("frontendIPConfigurations") or []:
                config_properties = config.get("properties") or {}
                frontends.append(
                    AzureFrontendIpConfiguration(
                        name=config.get("name"),
                        private_ip_address=config_properties.get("privateIPAddress"),
                        public_ip_address_id=(config_properties.get("publicIPAddress") or {}).get("id"),
                    )
                )
            results.append(
                AzureLoadBalancer(
                    id=balancer["id"],
                    name=balancer.get("name") or "",
                    location=balancer.get("location"),
                    sku=(balancer.get("sku") or {}).get("name"),
                    frontend_ip_configurations=frontends,
                )
            )
        return results

    async def get_metric_average(
        self,
        resource_id: str,
        metric_name: str,
        lookback_days: float,
        metric_namespace: str | None = None,
    ) -> float | None:
        """
        Average an Azure Monitor metric over the lookback window (hourly grain).

        Returns:
            Mean of the hourly averages, or None when Azure reports no data points
        """
        params = {
            "api-version": API_VERSIONS["metrics"],
            "timespan": _format_timespan(lookback_days),
            "interval": "PT1H",
            "aggregation": "Average",
            "metricnames": metric_name,
        }
        if metric_namespace:
            params["metricnamespace"] = metric_namespace

        data = await self._request(
            "GET", f"{resource_id}/providers/microsoft.insights/metrics", params=params
        )

        averages = [
            point["average"]
            for metric in data.get("value") or []
            for series in metric.get("timeseries") or []
            for point in series.get("data") or []
            if isinstance(point.get("average"), (int, float))
        ]
        if not averages:
            return None
        return sum(averages) / len(averages)

    async def get_vm_cpu_average(self, vm_id: str, lookback_days: float) -> float | None:
        return await self.get_metric_average(vm_id, "Percentage CPU", lookback_days)

    async def get_sql_utilization(self, database_id: str, lookback_days: float) -> float | None:
        return await self.get_metric_average(
            database_id, "cpu_percent", lookback_days, metric_namespace=SQL_DATABASE_TYPE
        )

    async def get_app_service_cpu(self, plan_id: str, lookback_days: float) -> float | None:
        return await self.get_metric_average(
            plan_id, "CpuPercentage", lookback_days, metric_namespace="Microsoft.Web/sites"
        )

    async def get_monthly_spend(self, scope: str | None = None) -> float:
        """
        Month-to-date actual cost (PreTaxCost) for the subscription or one resource.

        Args:
            scope: A resource id to restrict the query to; None for the whole subscription

        Returns:
            Sum of the daily cost rows
        """
        dataset: dict[str, Any] = {
            "granularity": "Daily",
            "aggregation": {"Cost": {"name": "PreTaxCost", "function": "Sum"}},
        }
        if scope and scope.rstrip("/").lower() != self.subscription_scope.lower():
            dataset["filter"] = {
                "dimensions": {"name": "ResourceId", "operator": "In", "values": [scope]}
            }
        else:
            scope = self.subscription_scope

        data = await self._request(
            "POST",
            f"{scope}/providers/Microsoft.CostManagement/query",
            params={"api-version": API_VERSIONS["cost"]},
            json_data={"type": "ActualCost", "timeframe": "MonthToDate", "dataset": dataset},
        )
        return _sum_cost_rows(data)

    async def get_subscription_monthly_cost(self) -> float:
        return await self.get_monthly_spend()

    async def estimate_resource_monthly_cost(self, resource_id: str) -> float:
        return await self.get_monthly_spend(resource_id)

# app/integrations/platforms/shopify.py
"""
Shopify Admin GraphQL adapter for the DestinationClient capability.

Product writes go through ``productSet`` (an upsert keyed by product id), so
create and update share one mutation shape. Inventory is set absolutely with
``inventorySetQuantities`` against a single location.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from app.core.exceptions import RemoteError
from app.schemas.sync import ProductPayload, RemoteRef

logger = logging.getLogger(__name__)


PRODUCT_SET_MUTATION = """
mutation productSet($input: ProductSetInput!, $synchronous: Boolean!) {
  productSet(input: $input, synchronous: $synchronous) {
    product {
      id
      handle
      variants(first: 100) {
        edges { node { id sku position } }
      }
    }
    userErrors { field message code }
  }
}
"""

PRODUCT_DELETE_MUTATION = """
mutation productDelete($input: ProductDeleteInput!) {
  productDelete(input: $input) {
    deletedProductId
    userErrors { field message }
  }
}
"""

VARIANT_INVENTORY_QUERY = """
query variantInventory($id: ID!, $locationId: ID!) {
  productVariant(id: $id) {
    inventoryItem {
      id
      inventoryLevel(locationId: $locationId) {
        quantities(names: ["available"]) { name quantity }
      }
    }
  }
}
"""

INVENTORY_SET_MUTATION = """
mutation inventorySetQuantities($input: InventorySetQuantitiesInput!) {
  inventorySetQuantities(input: $input) {
    inventoryAdjustmentGroup { reason }
    userErrors { field message code }
  }
}
"""


class ShopifyDestination:
    """One connected Shopify shop."""

    def __init__(
        self,
        destination_id: str,
        shop_domain: str,
        access_token: str,
        api_version: str,
        http_client: httpx.AsyncClient,
        default_location_id: Optional[str] = None,
        safety_buffer_percentage: float = 0.25,
    ):
        if not shop_domain or not access_token:
            raise ValueError("shop_domain and access_token are required for a Shopify destination")

        self.destination_id = destination_id
        self.shop_domain = shop_domain
        self.default_location_id = default_location_id
        self.graphql_url = f"https://{shop_domain}/admin/api/{api_version}/graphql.json"
        self.headers = {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
        }
        self._http = http_client

        # Throttle state, refreshed from the cost extension of every response
        self.max_available_points = 1000.0
        self.currently_available_points = self.max_available_points
        self.restore_rate = 50.0
        self.safety_buffer_percentage = safety_buffer_percentage

    # --- DestinationClient ---

    async def create_remote(self, payload: ProductPayload) -> RemoteRef:
        return await self._product_set(payload, remote_id=None)

    async def update_remote(self, ref: RemoteRef, payload: ProductPayload) -> RemoteRef:
        return await self._product_set(payload, remote_id=ref.remote_id)

    async def delete_remote(self, ref: RemoteRef) -> None:
        data = await self._execute(PRODUCT_DELETE_MUTATION, {"input": {"id": ref.remote_id}}, estimated_cost=10)
        self._raise_user_errors("productDelete", data)

    async def read_inventory(self, ref: RemoteRef, variant_id: str, location_id: Optional[str] = None) -> int:
        item = await self._inventory_item(ref, variant_id, location_id)
        level = item.get("inventoryLevel") or {}
        for quantity in level.get("quantities") or []:
            if quantity.get("name") == "available":
                return int(quantity.get("quantity") or 0)
        return 0

    async def write_inventory(
        self,
        ref: RemoteRef,
        variant_id: str,
        quantity: int,
        location_id: Optional[str] = None,
    ) -> None:
        location = self._location(location_id)
        item = await self._inventory_item(ref, variant_id, location)
        variables = {
            "input": {
                "name": "available",
                "reason": "correction",
                "ignoreCompareQuantity": True,
                "quantities": [
                    {"inventoryItemId": item["id"], "locationId": location, "quantity": quantity}
                ],
            }
        }
        data = await self._execute(INVENTORY_SET_MUTATION, variables, estimated_cost=10)
        self._raise_user_errors("inventorySetQuantities", data)

    # --- Payload mapping ---

    @staticmethod
    def build_product_set_input(payload: ProductPayload, remote_id: Optional[str] = None) -> Dict[str, Any]:
        options = payload.options or {"Title": [variant.title for variant in payload.variants]}

        variants: List[Dict[str, Any]] = []
        for variant in payload.variants:
            if payload.options:
                option_values = [
                    {"optionName": name, "name": variant.option_values.get(name, values[0] if values else "")}
                    for name, values in options.items()
                ]
            else:
                option_values = [{"optionName": "Title", "name": variant.title}]

            entry: Dict[str, Any] = {
                "optionValues": option_values,
                "price": str(variant.price),
                "compareAtPrice": str(variant.compare_at_price) if variant.compare_at_price is not None else None,
            }
            if variant.sku:
                entry["sku"] = variant.sku
            variants.append(entry)

        product_input: Dict[str, Any] = {
            "title": payload.title,
            "descriptionHtml": payload.description or "",
            "vendor": payload.vendor,
            "productType": payload.product_type,
            "status": payload.status.upper(),
            "tags": payload.tags,
            "productOptions": [
                {"name": name, "position": index + 1, "values": [{"name": value} for value in dict.fromkeys(values)]}
                for index, (name, values) in enumerate(options.items())
            ],
            "variants": variants,
        }
        if payload.collection_ids:
            product_input["collections"] = payload.collection_ids
        if remote_id:
            product_input["id"] = remote_id
        return product_input

    async def _product_set(self, payload: ProductPayload, remote_id: Optional[str]) -> RemoteRef:
        product_input = self.build_product_set_input(payload, remote_id)
        estimated_cost = 50 + len(payload.variants) * 5
        data = await self._execute(
            PRODUCT_SET_MUTATION,
            {"input": product_input, "synchronous": True},
            estimated_cost=estimated_cost,
        )
        result = self._raise_user_errors("productSet", data)

        product = result.get("product") or {}
        if not product.get("id"):
            raise RemoteError("productSet returned no product", destination_id=self.destination_id)

        remote_variants = sorted(
            (edge["node"] for edge in product.get("variants", {}).get("edges", [])),
            key=lambda node: node.get("position") or 0,
        )
        variant_ids = {
            local.variant_id: remote["id"]
            for local, remote in zip(payload.variants, remote_variants)
        }
        return RemoteRef(remote_id=product["id"], handle=product.get("handle"), variant_ids=variant_ids)

    async def _inventory_item(self, ref: RemoteRef, variant_id: str, location_id: Optional[str]) -> Dict[str, Any]:
        remote_variant_id = ref.variant_ids.get(variant_id)
        if not remote_variant_id:
            raise RemoteError(
                f"Variant {variant_id} has no remote counterpart on {self.destination_id}",
                destination_id=self.destination_id,
            )
        data = await self._execute(
            VARIANT_INVENTORY_QUERY,
            {"id": remote_variant_id, "locationId": self._location(location_id)},
            estimated_cost=5,
        )
        variant = (data or {}).get("productVariant")
        if not variant or not variant.get("inventoryItem"):
            raise RemoteError(f"Remote variant {remote_variant_id} not found", destination_id=self.destination_id)
        return variant["inventoryItem"]

    def _location(self, location_id: Optional[str]) -> str:
        location = location_id or self.default_location_id
        if not location:
            raise RemoteError(f"No inventory location configured for {self.destination_id}", destination_id=self.destination_id)
        return location

    # --- Transport ---

    def _raise_user_errors(self, operation: str, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        result = (data or {}).get(operation) or {}
        errors = result.get("userErrors") or []
        if errors:
            messages = "; ".join(f"{e.get('field')}: {e.get('message')}" for e in errors)
            raise RemoteError(f"{operation} rejected: {messages}", destination_id=self.destination_id)
        return result

    def _update_throttle_status(self, extensions: Dict[str, Any]) -> None:
        throttle = (extensions.get("cost") or {}).get("throttleStatus")
        if throttle:
            self.max_available_points = float(throttle["maximumAvailable"])
            self.currently_available_points = float(throttle["currentlyAvailable"])
            self.restore_rate = float(throttle["restoreRate"])

    async def _wait_for_budget(self, estimated_cost: int) -> None:
        required = estimated_cost + self.max_available_points * self.safety_buffer_percentage
        if self.currently_available_points >= required:
            return
        points_needed = required - self.currently_available_points
        wait_time = (points_needed / self.restore_rate if self.restore_rate > 0 else 10) + 0.5
        logger.info(
            "Shopify budget low on %s (%.0f points available, need ~%.0f); waiting %.2fs",
            self.shop_domain, self.currently_available_points, required, wait_time,
        )
        await asyncio.sleep(wait_time)
        self.currently_available_points = min(
            self.max_available_points,
            self.currently_available_points + self.restore_rate * wait_time,
        )

    async def _execute(self, query: str, variables: Dict[str, Any], estimated_cost: int = 10) -> Dict[str, Any]:
        await self._wait_for_budget(estimated_cost)

        try:
            response = await self._http.post(
                self.graphql_url,
                headers=self.headers,
                json={"query": query, "variables": variables},
            )
        except httpx.HTTPError as e:
            raise RemoteError(f"Request to {self.shop_domain} failed: {e}", destination_id=self.destination_id) from e

        if response.status_code == 429:
            self.currently_available_points = 0
        if response.status_code >= 400:
            raise RemoteError(
                f"HTTP {response.status_code} from {self.shop_domain}: {response.text[:200]}",
                destination_id=self.destination_id,
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise RemoteError(f"Invalid JSON from {self.shop_domain}", destination_id=self.destination_id) from e

        if "extensions" in body:
            self._update_throttle_status(body["extensions"])
        if body.get("errors"):
            messages = "; ".join(str(err.get("message", "Unknown error")) for err in body["errors"])
            raise RemoteError(f"GraphQL errors from {self.shop_domain}: {messages}", destination_id=self.destination_id)
        return body.get("data") or {}

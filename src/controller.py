"""
Operator Controller - Plans and applies declared resources.

Compares each declared resource with its tracked state, refreshes the state
from PagerDuty, and dispatches create, update or replace to the resource
plugin. Replacement is used when a force-new attribute changes.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from pagerduty import PagerDutyClient
from plugins import ReconcileResult, ResourceAction, ResourceSpec, get_registry
from plugins.registry import PluginRegistry
from plugins.resources.base import ResourcePlugin
from state import ResourceData, StateStore

logger = logging.getLogger(__name__)

SENSITIVE_VALUE = "(sensitive)"


@dataclass
class ControllerConfig:
    """Configuration for the controller."""

    reconcile_interval: int = 60
    max_concurrent_reconciles: int = 5
    prune: bool = False
    plugin_configs: Optional[Dict[str, Dict[str, Any]]] = None

    def __post_init__(self):
        if self.plugin_configs is None:
            self.plugin_configs = {}


class Controller:
    """
    Controller that reconciles declared resources with PagerDuty.

    Every operation saves the state file before returning, including when
    the plugin call fails part way, so created objects are never lost.
    """

    def __init__(
        self,
        client: PagerDutyClient,
        state_store: StateStore,
        registry: Optional[PluginRegistry] = None,
        config: Optional[ControllerConfig] = None,
    ):
        self.client = client
        self.state = state_store
        self.registry = registry or get_registry()
        self.config = config or ControllerConfig()
        self.reconcile_interval = self.config.reconcile_interval
        self.max_concurrent_reconciles = self.config.max_concurrent_reconciles
        self.semaphore = asyncio.Semaphore(self.max_concurrent_reconciles)
        self.running = False
        self._shutdown_event = asyncio.Event()

    async def _get_plugin(self, resource_type: str) -> ResourcePlugin:
        """
        Get the initialized plugin for a resource type.

        Raises:
            ValueError: If the resource type is not registered
        """
        return await self.registry.get_resource_plugin(
            resource_type, self.config.plugin_configs.get(resource_type)
        )

    # Planning

    @staticmethod
    def _normalize(plugin: ResourcePlugin, key: str, value: Any) -> Any:
        if value is None:
            value = [] if key in plugin.set_attributes else ""
        if key in plugin.set_attributes:
            return sorted(set(value))
        return value

    def _diff(
        self,
        plugin: ResourcePlugin,
        desired: Dict[str, Any],
        observed: Dict[str, Any],
    ) -> Dict[str, Dict[str, Any]]:
        """
        Attributes whose declared value differs from the observed one.

        Attributes left out of the declaration are not compared.
        """
        changes = {}
        for key, value in desired.items():
            if key in plugin.computed_attributes:
                continue
            old = self._normalize(plugin, key, observed.get(key))
            new = self._normalize(plugin, key, value)
            if old == new:
                continue
            if key in plugin.sensitive_attributes:
                changes[key] = {"old": SENSITIVE_VALUE, "new": SENSITIVE_VALUE}
            else:
                changes[key] = {"old": observed.get(key), "new": value}
        return changes

    async def _plan(
        self, spec: ResourceSpec, plugin: ResourcePlugin
    ) -> Tuple[ResourceAction, Dict[str, Dict[str, Any]], Optional[ResourceData]]:
        """
        Refresh tracked state and decide what apply has to do.

        Raises:
            ValueError: If the declared attributes are invalid; raised
                before any remote call
        """
        plugin.validate(
            ResourceData(spec.resource_type, spec.name, attributes=spec.attributes)
        )
        prior = self.state.get(spec.name)

        if prior is not None and prior.resource_type != spec.resource_type:
            return ResourceAction.REPLACE, {}, prior

        if prior is not None and prior.id:
            await plugin.read(prior, self.client)
            self.state.put(prior)

        if prior is None or not prior.id:
            changes = self._diff(plugin, spec.attributes, {})
            return ResourceAction.CREATE, changes, None

        changes = self._diff(plugin, spec.attributes, prior.attributes)
        if any(key in plugin.force_new_attributes for key in changes):
            return ResourceAction.REPLACE, changes, prior
        if changes:
            return ResourceAction.UPDATE, changes, prior
        return ResourceAction.NOOP, changes, prior

    async def plan(self, spec: ResourceSpec) -> ReconcileResult:
        """Refresh state and report the action apply would take."""
        result = ReconcileResult(name=spec.name)
        try:
            plugin = await self._get_plugin(spec.resource_type)
            action, changes, prior = await self._plan(spec, plugin)
            result.action = action
            result.changed_attributes = changes
            result.resource_id = prior.id if prior else ""
            result.success = True
        except Exception as e:
            logger.error(f"Error planning {spec.name}: {e}", exc_info=True)
            result.message = str(e)
        finally:
            self.state.save()
        return result

    async def plan_all(self, specs: List[ResourceSpec]) -> List[ReconcileResult]:
        """Plan every declared resource, plus deletions when pruning."""
        results = [await self.plan(spec) for spec in specs]
        for name in self._orphans(specs):
            prior = self.state.get(name)
            results.append(
                ReconcileResult(
                    name=name,
                    action=ResourceAction.DELETE,
                    success=True,
                    resource_id=prior.id if prior else "",
                )
            )
        return results

    def _orphans(self, specs: List[ResourceSpec]) -> List[str]:
        if not self.config.prune:
            return []
        declared = {spec.name for spec in specs}
        return [name for name in self.state.names() if name not in declared]

    # Applying

    async def apply(self, spec: ResourceSpec) -> ReconcileResult:
        """
        Bring one resource to its declared state.

        Failures are logged and reported in the result with the
        error text.
        """
        result = ReconcileResult(name=spec.name)
        data: Optional[ResourceData] = None

        try:
            plugin = await self._get_plugin(spec.resource_type)
            action, changes, prior = await self._plan(spec, plugin)
            result.action = action
            result.changed_attributes = changes

            if action == ResourceAction.NOOP:
                data = prior
                logger.info(f"No changes needed for {spec.name}")

            elif action == ResourceAction.UPDATE:
                data = ResourceData(
                    spec.resource_type,
                    spec.name,
                    attributes=spec.attributes,
                    resource_id=prior.id,
                )
                await plugin.update(data, self.client)

            else:
                if action == ResourceAction.REPLACE:
                    old_plugin = await self._get_plugin(prior.resource_type)
                    logger.info(f"Replacing {spec.name} ({prior.id})")
                    await old_plugin.delete(prior, self.client)
                    self.state.put(prior)

                data = ResourceData(
                    spec.resource_type, spec.name, attributes=spec.attributes
                )
                await plugin.create(data, self.client)

            if data is not None and not data.id:
                raise RuntimeError(
                    f"{spec.resource_type} '{spec.name}' disappeared during apply"
                )

            result.resource_id = data.id if data else ""
            result.success = True
            logger.info(f"Successfully reconciled {spec.name} ({action.value})")

        except Exception as e:
            logger.error(f"Failed to reconcile {spec.name}: {e}", exc_info=True)
            result.message = str(e)
            if data is not None:
                result.resource_id = data.id

        finally:
            if data is not None:
                self.state.put(data)
            self.state.save()

        return result

    async def _apply_bounded(self, spec: ResourceSpec) -> ReconcileResult:
        async with self.semaphore:
            return await self.apply(spec)

    async def apply_all(self, specs: List[ResourceSpec]) -> List[ReconcileResult]:
        """Apply every declared resource concurrently, then prune orphans."""
        orphans = self._orphans(specs)
        results = list(
            await asyncio.gather(*(self._apply_bounded(spec) for spec in specs))
        )
        for name in orphans:
            results.append(await self.destroy(name))
        return results

    async def destroy(self, name: str) -> ReconcileResult:
        """Delete a tracked resource and forget it."""
        result = ReconcileResult(name=name, action=ResourceAction.DELETE)
        prior = self.state.get(name)
        if prior is None:
            result.message = f"Resource '{name}' is not tracked in state"
            return result

        result.resource_id = prior.id
        try:
            plugin = await self._get_plugin(prior.resource_type)
            await plugin.delete(prior, self.client)
            self.state.put(prior)
            result.success = True
            logger.info(f"Destroyed {name}")
        except Exception as e:
            logger.error(f"Failed to destroy {name}: {e}", exc_info=True)
            result.message = str(e)
        finally:
            self.state.save()

        return result

    async def refresh(self, name: str) -> ReconcileResult:
        """Update a tracked resource's state from PagerDuty."""
        result = ReconcileResult(name=name, action=ResourceAction.REFRESH)
        prior = self.state.get(name)
        if prior is None:
            result.message = f"Resource '{name}' is not tracked in state"
            return result

        result.resource_id = prior.id
        try:
            plugin = await self._get_plugin(prior.resource_type)
            await plugin.read(prior, self.client)
            self.state.put(prior)
            if not prior.id:
                result.message = "Resource no longer exists; removed from state"
            result.success = True
        except Exception as e:
            logger.error(f"Failed to refresh {name}: {e}", exc_info=True)
            result.message = str(e)
        finally:
            self.state.save()

        return result

    async def import_resource(
        self, resource_type: str, name: str, resource_id: str
    ) -> ReconcileResult:
        """Start tracking an existing remote object under the given name."""
        result = ReconcileResult(
            name=name, action=ResourceAction.IMPORT, resource_id=resource_id
        )
        if self.state.get(name) is not None:
            result.message = f"Resource '{name}' is already tracked in state"
            return result

        try:
            plugin = await self._get_plugin(resource_type)
            data = ResourceData(resource_type, name, resource_id=resource_id)
            for imported in await plugin.import_state(data, self.client):
                await plugin.read(imported, self.client)
                self.state.put(imported)
            if self.state.get(name) is None:
                result.message = f"{resource_type} '{resource_id}' no longer exists"
            else:
                result.success = True
                logger.info(f"Imported {resource_type} {resource_id} as {name}")
        except Exception as e:
            logger.error(f"Failed to import {name}: {e}", exc_info=True)
            result.message = str(e)
        finally:
            self.state.save()

        return result

    # Operator loop

    async def start(self, load_specs: Callable[[], List[ResourceSpec]]) -> None:
        """
        Run the reconciliation loop until stop() is called.

        Args:
            load_specs: Returns the declared resources; called every cycle so
                manifest changes are picked up without a restart.
        """
        logger.info("Starting PagerDuty extension controller")
        self.running = True
        self._shutdown_event.clear()

        while self.running:
            try:
                specs = load_specs()
                results = await self.apply_all(specs)
                failed = [r.name for r in results if not r.success]
                if failed:
                    logger.warning(
                        f"Reconciled {len(results)} resources, "
                        f"{len(failed)} failed: {', '.join(failed)}"
                    )
                else:
                    logger.info(f"Reconciled {len(results)} resources")
            except Exception as e:
                logger.error(f"Error in reconciliation loop: {e}", exc_info=True)

            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(), timeout=self.reconcile_interval
                )
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        """Stop the reconciliation loop."""
        logger.info("Stopping PagerDuty extension controller")
        self.running = False
        self._shutdown_event.set()

"""Best-effort deletion of Kubernetes resources by name or name prefix."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Literal, Optional

from kubernetes.client.rest import ApiException

ResourceKind = Literal["service", "replication_controller", "pod"]


@dataclass(slots=True)
class CleanupOutcome:
    """Result of deleting (or failing to delete) a single resource."""

    kind: ResourceKind
    name: str
    success: bool
    error: Optional[str] = None


@dataclass(slots=True)
class CleanupReport:
    """Aggregate of every deletion attempted by one cleanup call."""

    outcomes: List[CleanupOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(outcome.success for outcome in self.outcomes)

    @property
    def failures(self) -> List[CleanupOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]

    def extend(self, other: "CleanupReport") -> "CleanupReport":
        self.outcomes.extend(other.outcomes)
        return self


class CleanupManager:
    """Delete services, replication controllers and pods, continuing past failures."""

    def __init__(self, core_api, namespace: str, logger: Optional[logging.Logger] = None) -> None:
        self.core_api = core_api
        self.namespace = namespace
        self.logger = logger or logging.getLogger(__name__)

    def clean_services(self, *ids: str) -> CleanupReport:
        report = CleanupReport()
        for service_id in ids:
            report.outcomes.append(
                self._delete("service", service_id, self.core_api.delete_namespaced_service)
            )
        return report

    def clean_replication_controllers(self, *ids: str) -> CleanupReport:
        report = CleanupReport()
        for rc_id in ids:
            report.outcomes.append(
                self._delete("replication_controller", rc_id, self.core_api.delete_namespaced_replication_controller)
            )
        return report

    def clean_pods(self, *prefixes: str) -> CleanupReport:
        """Delete every pod whose name starts with one of the prefixes."""
        report = CleanupReport()
        try:
            pods = self.core_api.list_namespaced_pod(self.namespace)
        except Exception as exc:
            self.logger.warning("Failed to list pods in namespace %s: %s", self.namespace, exc)
            for prefix in prefixes:
                report.outcomes.append(CleanupOutcome(kind="pod", name=prefix, success=False, error=str(exc)))
            return report

        pod_names = [pod.metadata.name for pod in (pods.items or [])]
        for prefix in prefixes:
            for pod_name in pod_names:
                if pod_name.startswith(prefix):
                    report.outcomes.append(
                        self._delete("pod", pod_name, self.core_api.delete_namespaced_pod)
                    )
        return report

    def clean_all(self, *prefixes: str, services: tuple = ()) -> CleanupReport:
        """Replication controllers first so they do not respawn the deleted pods."""
        report = CleanupReport()
        report.extend(self.clean_services(*services))
        report.extend(self.clean_replication_controllers(*prefixes))
        report.extend(self.clean_pods(*prefixes))
        return report

    def _delete(self, kind: ResourceKind, name: str, delete: Callable[..., object]) -> CleanupOutcome:
        try:
            status = delete(name=name, namespace=self.namespace)
        except ApiException as exc:
            if exc.status == 404:
                self.logger.info("%s [%s] not found, nothing to delete.", kind, name)
                return CleanupOutcome(kind=kind, name=name, success=True)
            self.logger.warning("Failed to delete %s [%s]: %s", kind, name, exc.reason or exc)
            return CleanupOutcome(kind=kind, name=name, success=False, error=str(exc.reason or exc))
        except Exception as exc:
            self.logger.warning("Failed to delete %s [%s]: %s", kind, name, exc)
            return CleanupOutcome(kind=kind, name=name, success=False, error=str(exc))

        self.logger.info("%s [%s] delete: %s.", kind, name, getattr(status, "status", status))
        return CleanupOutcome(kind=kind, name=name, success=True)

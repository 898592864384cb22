"""Windows service backend.

Reads go through psutil's service API (``win_service_iter`` /
``win_service_get``); writes go through ``sc.exe`` since psutil cannot change
start modes or control services.
"""

from __future__ import annotations

import logging
from typing import List

import psutil

from subprocess_utils import (
    ERROR_SERVICE_ALREADY_RUNNING,
    ERROR_SERVICE_DOES_NOT_EXIST,
    ERROR_SERVICE_NOT_ACTIVE,
    raise_for_failure,
    run_command,
)

from .errors import AccessDenied, ArtifactNotFound, OsApiFailure
from .models import ServiceRecord
from .os_interfaces import (
    START_MODE_AUTOMATIC,
    START_MODE_DISABLED,
    START_MODE_MANUAL,
    START_MODES,
)

logger = logging.getLogger(__name__)

# start= values accepted by `sc config`
SC_START_TYPES = {
    START_MODE_AUTOMATIC: "auto",
    START_MODE_MANUAL: "demand",
    START_MODE_DISABLED: "disabled",
}


def _record_from_psutil(service) -> ServiceRecord:
    """Build a ServiceRecord, leaving state fields empty if they cannot be read."""
    name = service.name()
    display_name = service.display_name() or name
    try:
        start_mode = service.start_type()
        run_state = service.status()
    except (psutil.AccessDenied, psutil.NoSuchProcess, OSError) as e:
        logger.debug(f"Could not read state of service {name}: {e}")
        return ServiceRecord(name=name, display_name=display_name)
    return ServiceRecord(
        name=name,
        display_name=display_name,
        start_mode=start_mode,
        run_state=run_state,
    )


class WindowsServiceManager:
    """ServiceManager implementation for the local Windows service database."""

    def list_services(self) -> List[ServiceRecord]:
        try:
            services = list(psutil.win_service_iter())
        except AttributeError as e:
            raise OsApiFailure("Service enumeration requires Windows") from e
        except (psutil.Error, OSError) as e:
            raise OsApiFailure(f"Failed to enumerate services: {e}", action="enumerate") from e
        return [_record_from_psutil(s) for s in services]

    def get_service(self, name: str) -> ServiceRecord:
        try:
            service = psutil.win_service_get(name)
            info = service.as_dict()
        except AttributeError as e:
            raise OsApiFailure("Service queries require Windows", identifier=name) from e
        except psutil.NoSuchProcess as e:
            raise ArtifactNotFound(
                f"Service {name} does not exist", identifier=name, action="query"
            ) from e
        except psutil.AccessDenied as e:
            raise AccessDenied(
                f"Access denied reading service {name}", identifier=name, action="query"
            ) from e
        except (psutil.Error, OSError) as e:
            raise OsApiFailure(
                f"Failed to query service {name}: {e}", identifier=name, action="query"
            ) from e
        return ServiceRecord(
            name=info.get("name") or name,
            display_name=info.get("display_name") or name,
            start_mode=info.get("start_type"),
            run_state=info.get("status"),
        )

    def set_start_mode(self, name: str, start_mode: str) -> None:
        if start_mode not in START_MODES:
            raise ValueError(f"Unsupported start mode: {start_mode!r}")
        result = run_command(["sc.exe", "config", name, "start=", SC_START_TYPES[start_mode]])
        raise_for_failure(
            result,
            identifier=name,
            action=f"set start mode {start_mode} on",
            not_found_codes=(ERROR_SERVICE_DOES_NOT_EXIST,),
        )
        logger.debug(f"Service {name} start mode set to {start_mode}")

    def stop_service(self, name: str) -> None:
        result = run_command(["sc.exe", "stop", name])
        raise_for_failure(
            result,
            identifier=name,
            action="stop",
            ok_codes=(0, ERROR_SERVICE_NOT_ACTIVE),
            not_found_codes=(ERROR_SERVICE_DOES_NOT_EXIST,),
        )

    def start_service(self, name: str) -> None:
        result = run_command(["sc.exe", "start", name])
        raise_for_failure(
            result,
            identifier=name,
            action="start",
            ok_codes=(0, ERROR_SERVICE_ALREADY_RUNNING),
            not_found_codes=(ERROR_SERVICE_DOES_NOT_EXIST,),
        )

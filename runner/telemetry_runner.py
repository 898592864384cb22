"""Telemetry runner for Disable Nvidia Telemetry.

Executes telemetry tasks (refresh, disable, enable, scheduled-task management,
settings) described as JSON, streams progress lines to stderr and emits a
final JSON report to stdout. ``--silent`` disables every discovered telemetry
service and task without any input; the application's scheduled task runs it
that way. Windows elevation is requested automatically when needed.
"""

import sys, os, ctypes, json, argparse, logging, time
from typing import List, Dict, Any, Callable, Optional, Tuple

from dotenv import load_dotenv

from sentry_config import (
    init_sentry,
    capture_task_exception,
    capture_task_failure,
    create_task_span,
    add_breadcrumb,
)
from log_sink import LogSink
from settings_store import SettingsStore, default_log_path

from nvtelemetry.context import TelemetryContext
from nvtelemetry.signatures import DEFAULT_SIGNATURES, load_signatures

from handlers.telemetry_handler import (
    run_telemetry_refresh,
    run_telemetry_disable,
    run_telemetry_enable,
)
from handlers.self_task_handler import (
    run_self_task_status,
    run_self_task_create,
    run_self_task_remove,
)
from handlers.settings_handler import run_settings_update

load_dotenv(os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env"))


def is_admin() -> bool:
    """Return True if the current process is running with administrator rights.

    On non-Windows platforms, returns False.
    """
    try:
        return bool(ctypes.windll.shell32.IsUserAnAdmin())
    except (AttributeError, OSError):
        return False


def relaunch_elevated(argv: List[str]) -> int:
    """Attempt to relaunch this executable elevated.

    Returns Windows-style error code on failure; returns 0 if the relaunch was
    initiated successfully (this process should then exit).
    """
    try:
        exe_path = sys.executable
        params = " ".join([f'"{a}"' for a in argv])
        ShellExecuteW = ctypes.windll.shell32.ShellExecuteW
        ShellExecuteW.restype = ctypes.c_void_p
        rc = ShellExecuteW(None, "runas", exe_path, params, None, 1)
        # >32 indicates success; 1223 is ERROR_CANCELLED when the user refuses
        if rc is None or rc <= 32:
            return 1223 if rc == 5 else int(rc or 1)
        return 0
    except (AttributeError, OSError):
        return 1


# Line-buffer stdio so marker lines reach the host UI immediately
for _stream in (sys.stdout, sys.stderr):
    _reconfigure = getattr(_stream, "reconfigure", None)
    if callable(_reconfigure):
        try:
            _reconfigure(line_buffering=True, write_through=True)
        except (ValueError, OSError):
            pass

_DEFAULT_LOG_FMT = "%(message)s"


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO, stream=sys.stderr, format=_DEFAULT_LOG_FMT, force=True
    )


def flush_logs():  # pragma: no cover - simple utility
    """Flush all logging handlers & stdio to push incremental lines to the UI."""
    for h in logging.getLogger().handlers:
        try:
            h.flush()
        except (OSError, ValueError):
            pass
    for stream in (sys.stderr, sys.stdout):
        try:
            stream.flush()
        except (OSError, ValueError):
            pass


# Truncation threshold for log snippets to keep logs readable in the UI.
MAX_LOG_SNIPPET: int = 200

# Type aliases for better readability.
Task = Dict[str, Any]
TaskResult = Dict[str, Any]
TaskHandler = Callable[[Task, TelemetryContext], TaskResult]

# --- Task Dispatcher ---
TASK_HANDLERS: Dict[str, TaskHandler] = {
    "telemetry_refresh": run_telemetry_refresh,
    "telemetry_disable": run_telemetry_disable,
    "telemetry_enable": run_telemetry_enable,
    "self_task_status": run_self_task_status,
    "self_task_create": run_self_task_create,
    "self_task_remove": run_self_task_remove,
    "settings": run_settings_update,
}

SILENT_TASKS: List[Task] = [{"type": "telemetry_disable", "stop_running": True, "log": True}]


def execute_single_task(
    task: Task,
    task_index: int,
    total_tasks: int,
    context: TelemetryContext,
) -> TaskResult:
    """Execute a single task and return its result.

    Handler exceptions are logged, reported to Sentry and turned into a
    failure result so the remaining tasks still run.
    """
    task_type = task.get("type", "") if isinstance(task, dict) else ""
    handler = TASK_HANDLERS.get(task_type) if task_type else None

    if not handler:
        logging.warning(
            "TASK_SKIP:%d:%s - No handler found for task type", task_index, task_type
        )
        flush_logs()
        add_breadcrumb(
            f"No handler found for task type: {task_type}",
            category="task",
            level="warning",
            task_type=task_type,
        )
        return {
            "task_type": task_type or "unknown",
            "status": "skipped",
            "summary": {"reason": "No handler implemented for this task type."},
        }

    logging.info("TASK_START:%d:%s", task_index, task_type)
    logging.info("Starting task %d/%d: %s", task_index + 1, total_tasks, task_type)
    flush_logs()

    with create_task_span(task_type, task_index, total_tasks) as span:
        try:
            task_start_time = time.time()
            result = handler(task, context)
            summary = result.setdefault("summary", {})
            summary.setdefault("duration_seconds", round(time.time() - task_start_time, 2))

            status = result.get("status", "unknown")
            if status in ("failure", "error"):
                human = summary.get("human_readable", {})
                failure_reason = (
                    human.get("error") or "; ".join(human.get("warnings", [])) or status
                )
                logging.error(
                    "TASK_FAIL:%d:%s - %s",
                    task_index,
                    task_type,
                    failure_reason[:MAX_LOG_SNIPPET],
                )
                capture_task_failure(task_type, failure_reason, task_data=task)
            else:
                logging.info("TASK_OK:%d:%s", task_index, task_type)
                if span:
                    span.set_tag("status", "success")
            message = summary.get("human_readable", {}).get("message")
            if message:
                logging.info("Task %s: %s", task_type, message)
            flush_logs()
            return result

        except Exception as e:
            logging.error("TASK_FAIL:%d:%s - Exception: %s", task_index, task_type, str(e))
            logging.debug("Task exception", exc_info=True)
            flush_logs()
            capture_task_exception(
                e,
                task_type=task_type,
                task_data=task,
                extra_context={"position": {"task_index": task_index, "total_tasks": total_tasks}},
            )
            if span:
                span.set_tag("status", "error")
            return {
                "task_type": task_type,
                "status": "failure",
                "summary": {"reason": f"Exception during execution: {str(e)}"},
            }


def run_tasks(tasks: List[Task], context: TelemetryContext) -> Tuple[List[TaskResult], bool]:
    """Run tasks sequentially; returns (results, overall_success)."""
    results: List[TaskResult] = []
    overall_success = True
    for index, task in enumerate(tasks):
        result = execute_single_task(task, index, len(tasks), context)
        if result.get("status") not in ("success", "skipped"):
            overall_success = False
        results.append(result)
    return results, overall_success


def build_report(results: List[TaskResult], overall_success: bool) -> Dict[str, Any]:
    if not results:
        overall_status = "success"
    elif overall_success:
        overall_status = "success"
    elif any(r.get("status") == "success" for r in results):
        overall_status = "completed_with_errors"
    else:
        overall_status = "failure"
    return {"overall_status": overall_status, "results": results}


def parse_tasks(raw_input: Optional[str]) -> List[Task]:
    """Accept a JSON string or file path holding {"tasks": [...]}, a list, or one task.

    Raises:
        ValueError: If the input is not valid JSON.
    """
    if raw_input is None:
        return []
    input_data = None
    if os.path.isfile(raw_input):
        logging.info(f"Reading from file: {raw_input}")
        with open(raw_input, "r", encoding="utf-8") as f:
            input_data = json.load(f)
    else:
        try:
            input_data = json.loads(raw_input)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON input provided: {e}") from e

    if isinstance(input_data, dict):
        if isinstance(input_data.get("tasks"), list):
            return input_data["tasks"]
        if "type" in input_data:
            return [input_data]
        return []
    if isinstance(input_data, list):
        return input_data
    return []


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Disable Nvidia Telemetry runner")
    parser.add_argument(
        "json_input",
        nargs="?",
        default=None,
        help="Either a JSON string or a path to a JSON file defining tasks.",
    )
    parser.add_argument(
        "--silent",
        action="store_true",
        help="Disable all telemetry services and tasks without further input.",
    )
    parser.add_argument(
        "--output-file",
        "-o",
        dest="output_file",
        default=None,
        help="Optional path to write the final JSON report.",
    )
    parser.add_argument(
        "--log-file",
        dest="log_file",
        default=None,
        help="Optional path to write a live log file (in addition to stderr).",
    )
    parser.add_argument(
        "--settings-file",
        dest="settings_file",
        default=None,
        help="Settings file to use instead of the per-user default.",
    )
    parser.add_argument(
        "--signatures",
        dest="signatures",
        default=None,
        help="JSON file with an alternative telemetry signature table.",
    )
    parser.add_argument(
        "--no-elevate",
        dest="no_elevate",
        action="store_true",
        help="Do not request administrator rights.",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entrypoint: parse input, execute tasks, emit final JSON report."""
    configure_logging()
    args = build_parser().parse_args(argv)

    if args.log_file:
        try:
            log_dir = os.path.dirname(args.log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            fh = logging.FileHandler(args.log_file, encoding="utf-8")
            fh.setFormatter(logging.Formatter(_DEFAULT_LOG_FMT))
            logging.getLogger().addHandler(fh)
            logging.info("Log file initialized: %s", args.log_file)
        except OSError as e:
            logging.error("Failed to initialize log file '%s': %s", args.log_file, e)
        flush_logs()

    # Service and task changes need administrator rights.
    if os.name == "nt" and not args.no_elevate and not is_admin():
        logging.info("Attempting to elevate privileges via UAC prompt...")
        code = relaunch_elevated(sys.argv[0:])
        if code != 0:
            logging.error("Elevation failed or cancelled (code %s)", code)
        return code

    if init_sentry():
        add_breadcrumb("Telemetry runner starting", category="lifecycle", level="info")

    if args.silent:
        tasks = [dict(t) for t in SILENT_TASKS]
    else:
        try:
            tasks = parse_tasks(args.json_input)
        except (ValueError, OSError) as e:
            logging.error(str(e))
            report = {"overall_status": "failure", "error": str(e), "results": []}
            print(json.dumps(report, indent=2))
            return 1
    logging.info(f"Parsed {len(tasks)} tasks")
    flush_logs()

    signatures = DEFAULT_SIGNATURES
    if args.signatures:
        try:
            signatures = load_signatures(args.signatures)
        except (ValueError, OSError) as e:
            logging.error("Failed to load signatures from %s: %s", args.signatures, e)
            return 1

    settings_store = SettingsStore(args.settings_file)
    settings = settings_store.load()
    log_sink = LogSink()
    if settings.file_logging:
        try:
            log_sink.enable_file_logging(default_log_path())
        except OSError as e:
            logging.warning("File logging unavailable: %s", e)

    context = TelemetryContext.for_windows(log_sink, settings_store, signatures=signatures)
    results, overall_success = run_tasks(tasks, context)
    report = build_report(results, overall_success)

    logging.info("RUN_COMPLETE:%s", report["overall_status"])
    flush_logs()

    output = json.dumps(report, indent=2)
    print(output)
    if args.output_file:
        try:
            with open(args.output_file, "w", encoding="utf-8") as f:
                f.write(output)
        except OSError as e:
            logging.error("Failed to write report to %s: %s", args.output_file, e)
    log_sink.disable_file_logging()
    return 0 if overall_success else 1


if __name__ == "__main__":
    sys.exit(main())

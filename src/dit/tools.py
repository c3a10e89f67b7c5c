"""MCP tool definitions wrapping the dit engine."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from .engine import DitEngine
from .errors import (
    CorruptError,
    DitError,
    HookError,
    IndexInconsistent,
    InvalidState,
    InvalidTaskKey,
    StorageError,
    TaskAlreadyExists,
    TaskNotFound,
)
from .models import Task, format_duration, format_timestamp, parse_timestamp

TIMESTAMP_DESCRIPTION = "Use this time instead of now, as 'YYYY-MM-DD HH:MM:SS +HHMM'"


def _task_property(description: str) -> dict:
    return {"type": "string", "description": description}


def _at_property() -> dict:
    return {"type": "string", "description": TIMESTAMP_DESCRIPTION}


def _new_properties() -> dict:
    return {
        "new": {
            "type": "boolean",
            "description": "Also create the task",
            "default": False,
        },
        "title": {
            "type": "string",
            "description": "Title of the new task. Only relevant if 'new' is set",
        },
        "fetch": {
            "type": "boolean",
            "description": "Fetch the title through the fetch_title hook",
            "default": False,
        },
    }


def make_tools(engine: DitEngine) -> dict[str, dict]:
    """Create MCP tool definitions for the dit engine.

    Returns:
        Dict mapping tool names to their definitions.
    """

    tools = {}

    tools["task_new"] = {
        "name": "task_new",
        "description": "Create a new task. Use '/' for nested tasks, e.g. 'foo/bar'.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "task": _task_property("Task to be created"),
                "title": {"type": "string", "description": "Title of the task"},
                "fetch": _new_properties()["fetch"],
            },
            "required": ["task"],
        },
    }

    tools["task_work_on"] = {
        "name": "task_work_on",
        "description": "Start clocking on the specified task.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "task": _task_property("The task to work on"),
                "at": _at_property(),
                **_new_properties(),
            },
            "required": ["task"],
        },
    }

    tools["task_halt"] = {
        "name": "task_halt",
        "description": "Stop clocking on the currently active task.",
        "inputSchema": {
            "type": "object",
            "properties": {"at": _at_property()},
        },
    }

    tools["task_append"] = {
        "name": "task_append",
        "description": "Undo the last halt and keep clocking on the most recent task.",
        "inputSchema": {"type": "object", "properties": {}},
    }

    tools["task_cancel"] = {
        "name": "task_cancel",
        "description": "Undo the last clock-in, discarding the active log entry.",
        "inputSchema": {"type": "object", "properties": {}},
    }

    tools["task_resume"] = {
        "name": "task_resume",
        "description": "Start clocking again on a previously worked task (default: the most recent).",
        "inputSchema": {
            "type": "object",
            "properties": {
                "at": _at_property(),
                "index": {
                    "type": "integer",
                    "description": "0 = most recent task, 1 = the one before, ...",
                    "default": 0,
                    "minimum": 0,
                },
            },
        },
    }

    tools["task_switch_to"] = {
        "name": "task_switch_to",
        "description": "Halt the active task and start clocking on another one.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "task": _task_property("The task to switch to"),
                "at": _at_property(),
                **_new_properties(),
            },
            "required": ["task"],
        },
    }

    tools["task_switch_back"] = {
        "name": "task_switch_back",
        "description": "Halt the active task and resume the one worked on before it.",
        "inputSchema": {
            "type": "object",
            "properties": {"at": _at_property()},
        },
    }

    tools["task_status"] = {
        "name": "task_status",
        "description": "Show the most recently touched tasks with their total effort.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "limit": {
                    "type": "integer",
                    "description": "Maximum rows (0 = unlimited, default from config)",
                    "minimum": 0,
                },
                "rebuild": {
                    "type": "boolean",
                    "description": "Rebuild the index first",
                    "default": False,
                },
                "short": {
                    "type": "boolean",
                    "description": "Only report the active task and its effort",
                    "default": False,
                },
            },
        },
    }

    tools["task_list"] = {
        "name": "task_list",
        "description": "List log entries chronologically, newest first.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "after": {"type": "string", "description": "Only entries starting at or after this time"},
                "before": {"type": "string", "description": "Only entries starting at or before this time"},
                "mode": {
                    "type": "string",
                    "enum": ["plain", "group-by-day", "daily"],
                    "description": "plain rows, rows grouped by day, or daily totals only",
                    "default": "group-by-day",
                },
            },
        },
    }

    tools["rebuild_index"] = {
        "name": "rebuild_index",
        "description": "Rebuild the task index from the task records. Use if status looks stale or inconsistent.",
        "inputSchema": {"type": "object", "properties": {}},
    }

    return tools


def _at(arguments: dict[str, Any], name: str = "at") -> Optional[datetime]:
    value = arguments.get(name)
    return parse_timestamp(value) if value else None


def _task_result(task: Task, message: str) -> dict[str, Any]:
    last = task.last_entry
    return {
        "success": True,
        "task": task.id,
        "title": task.title,
        "start": format_timestamp(last.start) if last else None,
        "end": format_timestamp(last.end) if last and last.end else None,
        "message": message,
    }


async def execute_tool(engine: DitEngine, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Execute a dit tool and return the result.

    Args:
        engine: DitEngine instance
        name: Tool name
        arguments: Tool arguments

    Returns:
        Result dict with success status and data or error
    """
    try:
        if name == "task_new":
            task = engine.new_task(
                key=arguments["task"],
                title=arguments.get("title"),
                fetch=arguments.get("fetch", False),
            )
            return _task_result(task, f"Created: {task.id}")

        elif name == "task_work_on":
            task = engine.work_on(
                key=arguments["task"],
                at=_at(arguments),
                new=arguments.get("new", False),
                title=arguments.get("title"),
                fetch=arguments.get("fetch", False),
            )
            return _task_result(task, f"Working on: {task.id}")

        elif name == "task_halt":
            task = engine.halt(at=_at(arguments))
            return _task_result(task, f"Halted: {task.id}")

        elif name == "task_append":
            task = engine.append()
            return _task_result(task, f"Appending to: {task.id}")

        elif name == "task_cancel":
            task = engine.cancel()
            return _task_result(task, f"Canceled: {task.id}")

        elif name == "task_resume":
            task = engine.work_on_previous(arguments.get("index", 0), at=_at(arguments))
            return _task_result(task, f"Working on: {task.id}")

        elif name == "task_switch_to":
            task = engine.switch_to(
                key=arguments["task"],
                at=_at(arguments),
                new=arguments.get("new", False),
                title=arguments.get("title"),
                fetch=arguments.get("fetch", False),
            )
            return _task_result(task, f"Working on: {task.id}")

        elif name == "task_switch_back":
            task = engine.switch_back(at=_at(arguments))
            return _task_result(task, f"Working on: {task.id}")

        elif name == "task_status":
            if arguments.get("short", False):
                item = engine.active()
                return {
                    "success": True,
                    "active": item.id if item else None,
                    "effort": format_duration(item.effort()) if item else None,
                }
            items = engine.status(
                limit=arguments.get("limit"),
                rebuild=arguments.get("rebuild", False),
            )
            return {
                "success": True,
                "count": len(items),
                "status": [item.to_dict() for item in items],
            }

        elif name == "task_list":
            after = _at(arguments, "after")
            before = _at(arguments, "before")
            mode = arguments.get("mode", "group-by-day")

            if mode == "plain":
                items = engine.listing(after, before)
                return {
                    "success": True,
                    "count": len(items),
                    "items": [item.to_dict() for item in items],
                }
            elif mode in ("group-by-day", "daily"):
                groups = [g.to_dict() for g in engine.daily(after, before)]
                if mode == "daily":
                    for g in groups:
                        del g["items"]
                return {"success": True, "count": len(groups), "days": groups}
            else:
                raise ValueError(f"Invalid list mode: {mode}")

        elif name == "rebuild_index":
            stats = engine.rebuild_index()
            return {"success": True, **stats}

        else:
            return {
                "success": False,
                "error": f"Unknown tool: {name}",
                "error_type": "unknown_tool",
            }

    except TaskNotFound as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "not_found",
            "suggestion": "Create the task first, or pass new=true",
        }

    except TaskAlreadyExists as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "already_exists",
        }

    except InvalidTaskKey as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "invalid_task_key",
            "suggestion": "Task keys are '/'-separated names starting with a letter, e.g. 'foo/bar'",
        }

    except InvalidState as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "invalid_state",
            "suggestion": "Use task_status to see what is currently active",
        }

    except IndexInconsistent as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "index_inconsistent",
            "suggestion": "Run rebuild_index, then fix any task left open by mistake",
        }

    except CorruptError as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "corrupt",
            "path": str(e.path) if e.path else None,
            "suggestion": "Fix the file by hand, then run rebuild_index",
        }

    except StorageError as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "storage_error",
            "path": str(e.path) if e.path else None,
        }

    except HookError as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "hook_error",
        }

    except DitError as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "dit_error",
        }

    except (KeyError, ValueError) as e:
        return {
            "success": False,
            "error": str(e),
            "error_type": "invalid_arguments",
        }

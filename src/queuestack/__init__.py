"""queuestack: a file-backed item store."""

from queuestack.config import Config, init_project, load_config, resolve_author
from queuestack.db import StackDB
from queuestack.errors import QueueStackError
from queuestack.index import FilterCriteria, StackIndex
from queuestack.item import Item, Status
from queuestack.layout import Lifecycle, StackLayout
from queuestack.movers import GitMover, PlainMover, select_mover
from queuestack.parser import parse, serialize
from queuestack.storage import AttachmentWarning, ItemRef, Storage
from queuestack.templates import TemplateOverrides, find_template, instantiate

__all__ = [
    "Config",
    "init_project",
    "load_config",
    "resolve_author",
    "StackDB",
    "QueueStackError",
    "FilterCriteria",
    "StackIndex",
    "Item",
    "Status",
    "Lifecycle",
    "StackLayout",
    "GitMover",
    "PlainMover",
    "select_mover",
    "parse",
    "serialize",
    "AttachmentWarning",
    "ItemRef",
    "Storage",
    "TemplateOverrides",
    "find_template",
    "instantiate",
]

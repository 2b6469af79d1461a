"""Domain facades over the resilient call chain."""

from .base import ResilienceContext, ResilientFacade
from .boards import BoardsAPI
from .iterations import IterationsAPI
from .pull_requests import PullRequestsAPI
from .repositories import RepositoriesAPI
from .teams import TeamsAPI
from .wiki import WikiAPI
from .wiql import WiqlAPI
from .work_items import BATCH_SIZE, WorkItemsAPI

__all__ = [
    "ResilienceContext",
    "ResilientFacade",
    "BoardsAPI",
    "IterationsAPI",
    "PullRequestsAPI",
    "RepositoriesAPI",
    "TeamsAPI",
    "WikiAPI",
    "WiqlAPI",
    "BATCH_SIZE",
    "WorkItemsAPI",
]

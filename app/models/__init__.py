"""SQLAlchemy database models."""
from dotenv import load_dotenv
from app.models.base import Base
from app.models.execution_log import AutomationSchedule, ExecutionLog
from app.models.recipe import Author, Category, DistributionBoard, Recipe
from app.models.work_item import WorkItem


load_dotenv()

__all__ = [
    "Base",
    "WorkItem",
    "ExecutionLog",
    "AutomationSchedule",
    "Author",
    "Category",
    "DistributionBoard",
    "Recipe",
]

"""
Ordered write sequences.

An admin write (create, update, delete) is a list of named steps run one
after another. Each step is committed as soon as it succeeds; a failing step
is rolled back on its own and raised as QueryError naming the step. Steps
committed before it stay committed.
"""
import logging
from typing import Awaitable, Callable, List, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nightlife.exceptions import QueryError

logger = logging.getLogger(__name__)

Step = Tuple[str, Callable[[], Awaitable[None]]]


async def run_steps(db: AsyncSession, operation: str, steps: Sequence[Step]) -> List[str]:
    """
    Run ``steps`` in order, committing after each one.

    Args:
        db: Privileged database session
        operation: Name of the whole write, used in logs and errors
        steps: (name, coroutine function) pairs

    Returns:
        List[str]: Names of the steps that ran

    Raises:
        QueryError: ``[operation.step] message`` for the first failing step
    """
    completed: List[str] = []
    for name, action in steps:
        try:
            await action()
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            message = str(getattr(e, "orig", None) or e)
            logger.error(
                f"{operation}: step '{name}' failed after {completed or 'no steps'}: {message}",
                exc_info=True
            )
            raise QueryError(f"{operation}.{name}", message) from e
        completed.append(name)
        logger.debug(f"{operation}: step '{name}' committed")

    return completed

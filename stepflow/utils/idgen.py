"""ID Generation Utilities"""
import uuid
from datetime import datetime, timezone
from typing import Optional


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Generate a unique ID with optional prefix

    Args:
        prefix: Optional prefix for the ID (e.g., 'WF', 'WFI', 'STEP')

    Returns:
        Unique ID string

    Examples:
        >>> generate_id('WFI')
        'WFI-a1b2c3d4e5f6'
        >>> generate_id()
        'a1b2c3d4e5f6'
    """
    # Generate short unique ID from UUID4
    unique_part = uuid.uuid4().hex[:12]

    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part


def generate_instance_id() -> str:
    """Generate workflow instance ID"""
    return generate_id("WFI")


def generate_step_id() -> str:
    """Generate step definition ID"""
    return generate_id("STEP")


def generate_rule_id() -> str:
    """Generate business rule ID"""
    return generate_id("RULE")


def generate_correlation_id() -> str:
    """
    Generate a correlation ID for request tracing

    Returns:
        Correlation ID string with timestamp prefix
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    unique_part = uuid.uuid4().hex[:8]
    return f"COR-{timestamp}-{unique_part}"

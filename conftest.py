"""Pytest configuration for Agent Desk CRM."""


def pytest_configure(config):
    """Configure pytest with custom settings."""
    # Add custom markers
    config.addinivalue_line(
        "markers", "trash: mark test as exercising the consolidated trash"
    )

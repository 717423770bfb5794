"""
使用方式:
    python -m health_monitor run
    python -m health_monitor check 172.16.5.196,10.0.0.1
"""

from .main import cli

if __name__ == "__main__":
    cli()

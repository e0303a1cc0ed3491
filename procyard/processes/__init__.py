"""Process management — OS-level subprocess supervision.

This package provides:
- runner: spawn shell commands in their own process group
- groups: signal delivery to whole process groups
- shutdown: SIGTERM, grace period, SIGKILL escalation
- Supervisor: the lifecycle owner used by the daemon and foreground modes
"""

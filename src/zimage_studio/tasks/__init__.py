"""
Task lifecycle subsystem.

Components:
- task_models.py: phases, poll policy, progress labels, state events
- task_controller.py: TaskLifecycleController (submit, poll, cancel-and-replace, teardown)
"""

"""
Production workflow: projects, Kanban stages, tasks and proofs.
"""

"""
Cache Domain Module

Domain model for the offline cache policy.
Contains entities, value objects, repository interfaces, and domain services.
"""

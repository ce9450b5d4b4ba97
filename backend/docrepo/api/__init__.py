"""
API layer - wire DTOs, mappers and the error taxonomy.
"""

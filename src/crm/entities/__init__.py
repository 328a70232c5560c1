"""CRM entities -- schemas, form validation, and tenant-scoped repositories.

Provides Pydantic schemas (closed enums with French labels, Create/Update/Read
payloads), parse_form() for the form boundary, and one repository per entity
kind: ContactRepository, DealRepository, PropertyRepository,
ActivityRepository and EmailTemplateRepository.
"""

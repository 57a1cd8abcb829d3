"""FHIR patient demo.

A console program that searches, creates, updates and deletes Patient
resources on a public FHIR R4 test server.
"""

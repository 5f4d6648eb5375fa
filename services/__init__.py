"""
Services package for the Field Visit Service.
Contains the station registry, work session controller, visit logger and
the backend API client.
"""

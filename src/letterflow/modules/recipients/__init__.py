"""
Recipients Module

A student's address book of letter writers (teachers, professors,
employers). Recommendation requests are always addressed to one of the
student's recipients.

API Endpoints:
- GET/POST /recipients
- GET/PUT/DELETE /recipients/{id}
"""

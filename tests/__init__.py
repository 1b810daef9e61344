"""
Test suite for the Clinic Queue Service.

Contains unit and integration tests for ticketing, queue transitions and
live status updates.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"

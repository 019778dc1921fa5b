"""Notifications app package.

Routes notification requests to email, push, SMS and in-app delivery and
flushes notifications scheduled for later delivery.
"""

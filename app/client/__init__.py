"""
Commission Tracker - Client Package

Client-side logic shared by dashboard front-ends.
"""

"""Credit Timeline - Services"""

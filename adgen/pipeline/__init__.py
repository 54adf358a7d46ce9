"""
Ad Generation Pipeline

Sequential run per request:
1. Points - balance check and deduction
2. Upload - product photo to file storage
3. Background removal - async job, polled
4. Compose - product + model image, polled when pending
"""

"""
Reference worker runtime.

Run as `python -m mcfaas.worker --ipc-fd <n>`: it waits for a Load message,
resolves the deployment's applications from its working directory and reports
them back as metadata.
"""

"""
Credentials service application package.

Core flow: ``coordinator`` (cache-aside with lock) on top of ``cache``
and ``locking``, both written against the ``store`` contract.
``events`` fans refresh notifications out to local observers.
``issuer`` and ``manager`` connect the flow to the real issuer, and
``main`` exposes it over HTTP.
"""

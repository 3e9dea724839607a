"""HTTP layer for connctl.

:class:`RequestDispatcher` sends requests to a connection and transparently
walks the cached-token / refresh-token / re-authentication cascade.
:func:`format_api_response` renders the result through the output system.

Example::

    from connctl.client import RequestDispatcher

    dispatcher = RequestDispatcher(http_client, registry, store)
    response = dispatcher.dispatch(request, "K3X9Q2")
"""

from connctl.client.dispatcher import RequestDispatcher
from connctl.client.response import extract_response_data, format_api_response

__all__ = ["RequestDispatcher", "extract_response_data", "format_api_response"]

from django.core.paginator import Paginator


def paginate(qs, request, serialize, default_size: int = 20, max_size: int = 100) -> dict:
    """Paginate a queryset into the ``{count, page, page_size, results}`` envelope.

    ``serialize`` maps one model instance to a JSON-ready dict.
    """
    try:
        page = int(request.GET.get("page", 1))
        page_size = int(request.GET.get("page_size", default_size))
    except ValueError:
        page, page_size = 1, default_size
    page_size = max(1, min(page_size, max_size))
    p = Paginator(qs, page_size)
    page_obj = p.get_page(page)
    return {
        "count": p.count,
        "page": page_obj.number,
        "page_size": page_size,
        "results": [serialize(o) for o in page_obj.object_list],
    }

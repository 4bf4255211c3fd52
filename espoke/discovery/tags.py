def value_from_tags(prefix: str, tags: list[str]) -> str:
    """
    Return the value of the first `<prefix>-<value>` tag, or an empty string.
    Only the first `-` separates prefix from value.
    """
    for tag in tags:
        head, _, value = tag.partition("-")
        if head == prefix:
            return value

    return ""


def cluster_name_from_tags(tags: list[str]) -> str:
    return value_from_tags("cluster_name", tags)


def scheme_from_tags(tags: list[str]) -> str:
    return "https" if "https" in tags else "http"

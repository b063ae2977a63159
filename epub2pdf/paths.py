from urllib.parse import unquote


def resolve_path(current_path, ref):
    """
    Chapter-relative reference → absolute archive path
    e.g. ('OEBPS/Text/ch1.xhtml', '../Images/cover.jpg') → 'OEBPS/Images/cover.jpg'
    Returns None for empty references and network URLs.
    """
    if not ref or ref.startswith('http'):
        return None

    clean = ref.split('#', 1)[0]

    stack = current_path.split('/')
    stack.pop()

    for part in clean.split('/'):
        if part in ('.', ''):
            continue
        if part == '..':
            if stack:
                stack.pop()
        else:
            stack.append(part)
    return unquote('/'.join(stack))

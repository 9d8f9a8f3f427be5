from fastapi import Request


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def get_public_actor(request: Request, party: str) -> str:
    ip = get_client_ip(request)
    return f'{party}@{ip}' if ip else party

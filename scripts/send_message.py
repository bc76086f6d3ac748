#!/usr/bin/env python3
"""Send a message to a running Revoc API and print what came back.

Usage:
    python scripts/send_message.py USER_ID "Your message here"

Example:
    # Start a new conversation
    python scripts/send_message.py 1 "Had lunch with Maria from Acme"

    # Continue conversation 12, against a different server
    python scripts/send_message.py 1 "Maria says hi" --conversation 12 --base-url http://localhost:9000

    # Save every unresolved person as a new contact
    python scripts/send_message.py 1 "Met Tom at the gym" --save-candidates
"""

import argparse
import sys
from typing import Optional

import requests

DEFAULT_BASE_URL = "http://localhost:8765"


def send_message(base_url: str, user_id: int, content: str,
                 conversation_id: Optional[int] = None) -> requests.Response:
    """POST a user message to /api/messages.

    Args:
        base_url: Root URL of the Revoc API
        user_id: Value for the X-User-Id header
        content: Message text
        conversation_id: Existing conversation, or None to start a new one

    Returns:
        The raw response (201 on success, 502 when the assistant failed)
    """
    payload = {"content": content}
    if conversation_id is not None:
        payload["conversation_id"] = conversation_id
    return requests.post(
        f"{base_url}/api/messages",
        json=payload,
        headers={"X-User-Id": str(user_id)},
        timeout=120,
    )


def save_candidate(base_url: str, user_id: int, candidate: dict, conversation_id: int) -> dict:
    response = requests.post(
        f"{base_url}/api/candidates/save",
        json={**candidate, "conversation_id": conversation_id},
        headers={"X-User-Id": str(user_id)},
        timeout=30,
    )
    response.raise_for_status()
    return response.json()


def main():
    parser = argparse.ArgumentParser(description="Send a message to the Revoc API")
    parser.add_argument("user_id", type=int)
    parser.add_argument("content")
    parser.add_argument("--conversation", type=int, default=None)
    parser.add_argument("--base-url", default=DEFAULT_BASE_URL)
    parser.add_argument("--save-candidates", action="store_true",
                        help="save every unresolved person as a new contact")
    args = parser.parse_args()

    try:
        response = send_message(args.base_url, args.user_id, args.content, args.conversation)
    except requests.RequestException as e:
        print(f"❌ Could not reach {args.base_url}: {e}")
        sys.exit(1)

    if response.status_code not in (201, 502):
        print(f"❌ {response.status_code}: {response.text}")
        sys.exit(1)

    result = response.json()
    conversation_id = result["conversation"]["id"]
    print(f"Conversation {conversation_id}: {result['conversation']['title']}")
    print(f"You: {result['user_message']['content']}")
    if result.get("assistant_message"):
        print(f"Assistant: {result['assistant_message']['content']}")
    else:
        print(f"⚠️ Assistant failed: {result.get('assistant_error')}")

    for mention in result.get("resolved", []):
        print(f"  linked: {mention['contact']['name']} (contact {mention['contact']['id']})")
    for candidate in result.get("unresolved", []):
        context = f" ({candidate['contextInfo']})" if candidate.get("contextInfo") else ""
        print(f"  unresolved: {candidate['name']}{context}")
        if args.save_candidates:
            saved = save_candidate(args.base_url, args.user_id, candidate, conversation_id)
            print(f"    ✅ saved as contact {saved['contact']['id']}")
    for event in result.get("events", []):
        print(f"  event: {event['title']} at {event.get('start_time')}")
    for task in result.get("tasks", []):
        print(f"  task: {task['title']} due {task.get('due_date')}")


if __name__ == "__main__":
    main()

"""Sequence editing tools for the Mixed Content Sequencer"""

from typing import Optional

from mcp.server.fastmcp import FastMCP

from managers.sequence_editor import SequenceEditor
from managers.sequence_library import SequenceLibrary
from tools.helpers import sequence_response


def register_sequence_tools(
    mcp: FastMCP,
    editor: SequenceEditor,
    library: SequenceLibrary
):
    """Register reorder/remove/bulk tools and the saved sequence library"""
    aggregator = editor.aggregator

    @mcp.tool()
    def move_up(index: int) -> dict:
        """Swap the item at `index` with the one before it (no-op at the top)."""
        changed = editor.move_up(index)
        return sequence_response(editor.assets, aggregator, changed=changed)

    @mcp.tool()
    def move_down(index: int) -> dict:
        """Swap the item at `index` with the one after it (no-op at the bottom)."""
        changed = editor.move_down(index)
        return sequence_response(editor.assets, aggregator, changed=changed)

    @mcp.tool()
    def reorder(from_index: int, to_index: int) -> dict:
        """Move one item to a new position (drag-and-drop semantics).

        Out-of-range or equal indices leave the sequence unchanged.
        """
        changed = editor.reorder(from_index, to_index)
        return sequence_response(editor.assets, aggregator, changed=changed)

    @mcp.tool()
    def remove_asset(asset_id: str) -> dict:
        """Remove one item, with confirmation.

        The first call only arms the removal and returns pending_removal;
        calling again with the same asset_id removes it. Any other editing
        tool cancels a pending removal.
        """
        removed = editor.remove(asset_id)
        return sequence_response(
            editor.assets,
            aggregator,
            removed=removed,
            pending_removal=editor.pending_removal,
        )

    @mcp.tool()
    def cancel_removal() -> dict:
        """Cancel a pending (armed) removal."""
        editor.cancel_removal()
        return {"pending_removal": None}

    @mcp.tool()
    def remove_by_kind(kind: str) -> dict:
        """Remove every item of one kind: "animation", "image" or "video"."""
        try:
            removed = editor.remove_by_kind(kind)
        except ValueError as exc:
            return {"error": str(exc)}
        return sequence_response(editor.assets, aggregator, removed_count=removed)

    @mcp.tool()
    def clear_all() -> dict:
        """Empty the sequence and forget the saved custom order."""
        editor.clear_all()
        return sequence_response(editor.assets, aggregator)

    @mcp.tool()
    def shuffle() -> dict:
        """Randomize the order of the sequence.

        The shuffled order is sent to the video assembly step but is not
        saved as the custom order.
        """
        assets = editor.shuffle()
        return sequence_response(assets, aggregator)

    @mcp.tool()
    def get_final_sequence() -> dict:
        """Get the arrangement last pushed to the video assembly step.

        Returns entries with id, kind and order, plus the included video ids
        and the image order as "setId:index" references.
        """
        return aggregator.final_sequence.to_dict()

    @mcp.tool()
    def save_sequence(name: Optional[str] = None, description: Optional[str] = None) -> dict:
        """Save the current arrangement under a name (the 20 most recent are kept)."""
        sequence_id = library.save_sequence(editor.assets, name=name, description=description)
        if not sequence_id:
            return {"error": "Failed to save sequence"}
        return {"success": True, "sequence_id": sequence_id}

    @mcp.tool()
    def list_saved_sequences() -> dict:
        """List saved arrangements, most recent first."""
        sequences = library.list_sequences()
        return {
            "sequences": [sequence.to_dict() for sequence in sequences],
            "count": len(sequences),
        }

    @mcp.tool()
    def rename_saved_sequence(
        sequence_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> dict:
        """Update the name and/or description of a saved arrangement."""
        if not library.update_sequence(sequence_id, name=name, description=description):
            return {"error": f"Sequence {sequence_id} not found"}
        return {"success": True}

    @mcp.tool()
    def delete_saved_sequence(sequence_id: str) -> dict:
        """Delete one saved arrangement."""
        if not library.delete_sequence(sequence_id):
            return {"error": f"Sequence {sequence_id} not found"}
        return {"success": True}
